"""Tests for the MCP tool surface and request credential handling."""

import base64
import json

import mcp.types as types
import pytest

from salesforce_mcp.config import SalesforceCredentials, parse_auth_data
from salesforce_mcp.server import dispatch_tool, extract_auth_credentials, list_tool_definitions
from salesforce_mcp.tools.base import CaseCreationAborted, ToolResult
from salesforce_mcp.tools.interaction import ElicitationPrompter

from conftest import ScriptedPrompter, make_query_router


def test_tool_surface():
    names = [tool.name for tool in list_tool_definitions()]

    assert names == [
        "salesforce_query_records",
        "salesforce_dml_records",
        "salesforce_get_case_metadata",
        "salesforce_search_accounts",
        "salesforce_search_contacts",
        "salesforce_get_picklist_values",
        "salesforce_create_case",
    ]


def test_dml_schema_declares_operations():
    dml = next(t for t in list_tool_definitions() if t.name == "salesforce_dml_records")

    assert dml.inputSchema["properties"]["operation"]["enum"] == ["insert", "update", "delete", "upsert"]
    assert dml.inputSchema["required"] == ["operation", "objectName", "records"]


async def test_dispatch_routes_to_handler(conn, mock_sf, acme_accounts):
    mock_sf.query_all.side_effect = make_query_router({"Account": acme_accounts})

    result = await dispatch_tool("salesforce_search_accounts", {"searchTerm": "Acme"}, connect=lambda: conn)

    assert not result.is_error
    assert "2. Acme Industries" in result.text


async def test_dispatch_passes_prompter_to_case_insert(conn, mock_sf, acme_accounts):
    mock_sf.query_all.side_effect = make_query_router({"Account": acme_accounts})
    prompter = ScriptedPrompter(["Acme", "0"])

    result = await dispatch_tool(
        "salesforce_dml_records",
        {"operation": "insert", "objectName": "Case", "records": [{}]},
        prompter=prompter,
        connect=lambda: conn,
    )

    assert result.is_error
    assert "Invalid Account selection" in result.text


@pytest.mark.parametrize("arguments, message", [
    ({"operation": "upsert", "objectName": "Account", "records": [{"Name": "A"}]},
     "externalIdField is required for upsert operations"),
    ({"operation": "update", "objectName": "Account", "records": [{"Name": "A"}]},
     "Id is required for update operations (missing on record 1)"),
    ({"operation": "delete", "objectName": "Account", "records": []},
     "At least one record is required for delete operations"),
    ({"operation": "insert", "objectName": "Case", "records": []},
     "Guided case creation requires an interactive client"),
])
async def test_invalid_dml_arguments_fail_before_connecting(arguments, message):
    calls = []

    def connect():
        calls.append("login")
        raise RuntimeError("remote login failed")

    result = await dispatch_tool("salesforce_dml_records", arguments, connect=connect)

    assert result == ToolResult.failure(message)
    assert calls == []


async def test_unknown_tool(conn):
    result = await dispatch_tool("salesforce_nope", {}, connect=lambda: conn)

    assert result == ToolResult.failure("Unknown tool: salesforce_nope")


async def test_missing_argument(conn):
    result = await dispatch_tool("salesforce_search_contacts", {}, connect=lambda: conn)

    assert result.is_error
    assert "accountId" in result.text


async def test_connection_failure_is_an_error_result():
    def connect():
        raise RuntimeError("Salesforce credentials not configured.")

    result = await dispatch_tool("salesforce_get_case_metadata", {}, connect=connect)

    assert result.is_error
    assert "credentials not configured" in result.text


def test_tool_result_wire_shape():
    assert ToolResult.ok("done").to_dict() == {"content": [{"type": "text", "text": "done"}], "isError": False}


class TestCredentials:
    def test_header_auth_data(self, monkeypatch):
        monkeypatch.delenv("AUTH_DATA", raising=False)
        payload = json.dumps({"access_token": "tok", "instance_url": "https://example.my.salesforce.com"})
        scope = {"headers": [(b"x-auth-data", base64.b64encode(payload.encode()))]}

        assert extract_auth_credentials(scope) == ("tok", "https://example.my.salesforce.com")

    def test_env_auth_data_wins(self, monkeypatch):
        monkeypatch.setenv("AUTH_DATA", json.dumps({"access_token": "env", "instance_url": "https://env"}))

        assert extract_auth_credentials({"headers": []}) == ("env", "https://env")

    @pytest.mark.parametrize("raw", ["", "not json", "[1, 2]"])
    def test_unusable_auth_data(self, raw):
        assert parse_auth_data(raw) == ("", "")

    def test_credentials_from_env(self, monkeypatch):
        monkeypatch.setenv("SALESFORCE_USERNAME", "user@example.com")
        monkeypatch.setenv("SALESFORCE_PASSWORD", "secret")
        monkeypatch.delenv("SALESFORCE_ACCESS_TOKEN", raising=False)
        monkeypatch.delenv("SALESFORCE_DOMAIN", raising=False)

        credentials = SalesforceCredentials.from_env()

        assert credentials.has_login
        assert not credentials.has_session
        assert credentials.domain == "login"


class FakeSession:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def elicit(self, message, requestedSchema, related_request_id=None):
        self.calls.append((message, requestedSchema, related_request_id))
        return self.result


class TestElicitationPrompter:
    async def test_accepted_answer_is_returned(self):
        session = FakeSession(types.ElicitResult(action="accept", content={"response": " 2 "}))

        answer = await ElicitationPrompter(session, related_request_id=7).prompt("Select an account:")

        assert answer == "2"
        message, schema, request_id = session.calls[0]
        assert message == "Select an account:"
        assert schema["required"] == ["response"]
        assert request_id == 7

    @pytest.mark.parametrize("action", ["decline", "cancel"])
    async def test_declined_prompt_aborts(self, action):
        session = FakeSession(types.ElicitResult(action=action))

        with pytest.raises(CaseCreationAborted):
            await ElicitationPrompter(session).prompt("Create this case? (Y/N):")

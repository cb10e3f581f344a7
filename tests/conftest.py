"""
Shared fixtures for the Salesforce tool tests.

The Salesforce session is a MagicMock standing in for simple_salesforce's
``Salesforce``: ``query_all`` is routed by the object in the FROM clause,
``<Object>.describe`` returns canned metadata and ``restful`` answers the
sObject Collections calls.
"""

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from salesforce_mcp.tools.base import SalesforceConnection


def sf_field(name: str, type: str = "string", label: Optional[str] = None, nillable: bool = True,
             createable: bool = True, defaulted: bool = False, picklist: Optional[List[Dict[str, Any]]] = None,
             reference_to: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "name": name,
        "label": label or name,
        "type": type,
        "nillable": nillable,
        "createable": createable,
        "defaultedOnCreate": defaulted,
        "picklistValues": picklist or [],
        "referenceTo": reference_to or [],
    }


def picklist(*labels: str, default: Optional[str] = None) -> List[Dict[str, Any]]:
    return [
        {"label": label, "value": label, "defaultValue": label == default, "active": True}
        for label in labels
    ]


CASE_FIELDS = [
    sf_field("Id", "id", nillable=False, createable=False, defaulted=True),
    sf_field("CaseNumber", "string", label="Case Number", nillable=False, createable=True),
    sf_field("AccountId", "reference", label="Account ID", reference_to=["Account"]),
    sf_field("ContactId", "reference", label="Contact ID", reference_to=["Contact"]),
    sf_field("SuppliedEmail", "email", label="Web Email"),
    sf_field("SuppliedName", "string", label="Web Name"),
    sf_field("Subject", "string"),
    sf_field("Description", "textarea"),
    sf_field("Origin", "picklist", label="Case Origin", picklist=picklist("Phone", "Email", "Web")),
    sf_field("Status", "picklist", nillable=False, defaulted=True,
             picklist=picklist("New", "Working", "Escalated", default="New")),
    sf_field("Priority", "picklist", picklist=picklist("High", "Medium", "Low", default="Medium")),
    sf_field("Type", "picklist", picklist=picklist("Question", "Problem")),
]


def case_describe(extra_fields: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {"name": "Case", "fields": CASE_FIELDS + list(extra_fields or [])}


def make_query_router(tables: Dict[str, List[Dict[str, Any]]]):
    """Answer query_all by looking at the object named in the FROM clause."""
    def query_all(soql: str) -> Dict[str, Any]:
        for object_name, rows in tables.items():
            if f" FROM {object_name}" in soql:
                records = [{"attributes": {"type": object_name}, **row} for row in rows]
                return {"totalSize": len(records), "done": True, "records": records}
        return {"totalSize": 0, "done": True, "records": []}
    return query_all


def created_results(path: str, method: str = "GET", params=None, json=None, **kwargs):
    records = (json or {}).get("records", [])
    return [{"id": f"500000000000{idx:03d}", "success": True, "errors": []} for idx, _ in enumerate(records)]


class ScriptedPrompter:
    """Replays canned answers and records every prompt it was shown."""

    def __init__(self, answers: List[str]):
        self.answers = list(answers)
        self.prompts: List[str] = []

    async def prompt(self, message: str) -> str:
        self.prompts.append(message)
        assert self.answers, f"Unexpected prompt: {message}"
        return self.answers.pop(0)


@pytest.fixture
def mock_sf():
    """Create a mock Salesforce session."""
    sf = MagicMock()
    sf.sf_instance = "example.my.salesforce.com"
    sf.query_all.side_effect = make_query_router({})
    sf.Case.describe.return_value = case_describe()
    sf.restful.side_effect = created_results
    return sf


@pytest.fixture
def conn(mock_sf):
    return SalesforceConnection(mock_sf)


@pytest.fixture
def acme_accounts():
    return [
        {"Id": "001000000000001", "Name": "Acme Corp"},
        {"Id": "001000000000002", "Name": "Acme Industries"},
    ]

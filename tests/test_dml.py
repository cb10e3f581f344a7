"""Tests for the DML handler."""

import pytest
from simple_salesforce.exceptions import SalesforceMalformedRequest

from salesforce_mcp.tools.base import DMLResult
from salesforce_mcp.tools.dml import format_dml_report, handle_dml_records

MIXED_RESULTS = [
    {"id": "001000000000001", "success": True, "errors": []},
    {
        "id": None,
        "success": False,
        "errors": [{"statusCode": "REQUIRED_FIELD_MISSING", "message": "Required fields are missing: [Name]", "fields": ["Name"]}],
    },
    {"id": "001000000000003", "success": True, "errors": []},
]


class TestInsertUpdateDelete:
    async def test_partial_failure_is_reported_not_raised(self, conn, mock_sf):
        mock_sf.restful.side_effect = None
        mock_sf.restful.return_value = MIXED_RESULTS

        result = await handle_dml_records(conn, "insert", "Account", [{"Name": "A"}, {}, {"Name": "C"}])

        assert not result.is_error
        assert "INSERT operation completed." in result.text
        assert "Processed 3 records:" in result.text
        assert "- Successful: 2" in result.text
        assert "- Failed: 1" in result.text
        assert "Record 1 - ID: 001000000000001" in result.text
        assert "Record 3 - ID: 001000000000003" in result.text
        assert "Record 2:\n  - Required fields are missing: [Name] [REQUIRED_FIELD_MISSING]\n    Fields: Name" in result.text

        path = mock_sf.restful.call_args.args[0]
        assert path == "composite/sobjects"
        assert mock_sf.restful.call_args.kwargs["method"] == "POST"
        assert mock_sf.restful.call_args.kwargs["json"]["allOrNone"] is False

    async def test_update_requires_ids(self, conn, mock_sf):
        result = await handle_dml_records(conn, "update", "Account", [{"Id": "001000000000001", "Name": "A"}, {"Name": "B"}])

        assert result.is_error
        assert "record 2" in result.text
        mock_sf.restful.assert_not_called()

    async def test_update_patches_collection(self, conn, mock_sf):
        result = await handle_dml_records(conn, "update", "Account", [{"Id": "001000000000001", "Name": "A"}])

        assert not result.is_error
        assert mock_sf.restful.call_args.kwargs["method"] == "PATCH"
        assert mock_sf.restful.call_args.kwargs["json"]["records"][0]["Id"] == "001000000000001"

    async def test_delete_sends_only_ids(self, conn, mock_sf):
        mock_sf.restful.side_effect = None
        mock_sf.restful.return_value = [
            {"id": "001000000000001", "success": True, "errors": []},
            {"id": "001000000000002", "success": True, "errors": []},
        ]

        result = await handle_dml_records(conn, "delete", "Account", [{"Id": "001000000000001", "Name": "A"}, {"Id": "001000000000002"}])

        assert "- Successful: 2" in result.text
        kwargs = mock_sf.restful.call_args.kwargs
        assert kwargs["method"] == "DELETE"
        assert kwargs["params"] == {"ids": "001000000000001,001000000000002", "allOrNone": "false"}

    async def test_large_batches_are_split(self, conn, mock_sf):
        records = [{"Name": f"Account {i}"} for i in range(250)]

        result = await handle_dml_records(conn, "insert", "Account", records)

        assert mock_sf.restful.call_count == 2
        assert "Processed 250 records:" in result.text
        assert "- Successful: 250" in result.text


class TestUpsert:
    async def test_missing_external_id_fails_before_remote_call(self, conn, mock_sf):
        result = await handle_dml_records(conn, "upsert", "Account", [{"Name": "A"}])

        assert result.is_error
        assert result.text == "externalIdField is required for upsert operations"
        mock_sf.restful.assert_not_called()
        mock_sf.query_all.assert_not_called()

    async def test_upsert_targets_external_id_resource(self, conn, mock_sf):
        result = await handle_dml_records(conn, "upsert", "Account", [{"External_Id__c": "X1", "Name": "A"}], external_id_field="External_Id__c")

        assert not result.is_error
        assert mock_sf.restful.call_args.args[0] == "composite/sobjects/Account/External_Id__c"
        assert mock_sf.restful.call_args.kwargs["method"] == "PATCH"


class TestValidationAndErrors:
    async def test_unsupported_operation(self, conn):
        result = await handle_dml_records(conn, "merge", "Account", [{"Id": "1"}])

        assert result.is_error
        assert "Unsupported operation: merge" in result.text

    async def test_empty_records_rejected(self, conn, mock_sf):
        result = await handle_dml_records(conn, "insert", "Account", [])

        assert result.is_error
        mock_sf.restful.assert_not_called()

    async def test_remote_rejection_is_an_error_result(self, conn, mock_sf):
        mock_sf.restful.side_effect = SalesforceMalformedRequest(
            "https://example/services/data", 400, "composite/sobjects",
            [{"message": "sObject type 'Acount' is not supported.", "errorCode": "INVALID_TYPE"}],
        )

        result = await handle_dml_records(conn, "insert", "Acount", [{"Name": "A"}])

        assert result.is_error
        assert "sObject type 'Acount' is not supported." in result.text

    async def test_case_insert_needs_an_interactive_client(self, conn, mock_sf):
        result = await handle_dml_records(conn, "insert", "Case", [{"Subject": "x"}])

        assert result.is_error
        mock_sf.restful.assert_not_called()


@pytest.mark.parametrize("flags", [[True, True], [False], [True, False, False, True], []])
def test_report_tally_adds_up(flags):
    results = [DMLResult(success=f, id="a0X" if f else None) for f in flags]

    text = format_dml_report("update", results)

    successes = sum(flags)
    assert f"Processed {len(flags)} records:" in text
    assert f"- Successful: {successes}" in text
    assert f"- Failed: {len(flags) - successes}" in text

# Salesforce MCP Server Tools
# This package contains the tool handlers, the connection wrapper and the guided case flow

from .query import handle_query_records
from .dml import handle_dml_records, format_dml_report, validate_dml_request
from .cases import (
    handle_get_case_metadata,
    handle_search_accounts,
    handle_search_contacts,
    handle_get_picklist_values,
    handle_create_case,
)
from .case_flow import run_guided_case_creation
from .interaction import ConsolePrompter, ElicitationPrompter, Prompter
from .base import (
    access_token_context,
    instance_url_context,
    get_salesforce_conn,
    SalesforceConnection,
    ToolResult,
    CaseCreationAborted,
    InvalidSelectionError,
    NoMatchingRecordsError,
    InvalidFieldValueError,
)

__all__ = [
    # Query
    "handle_query_records",

    # DML
    "handle_dml_records",
    "format_dml_report",
    "validate_dml_request",

    # Cases
    "handle_get_case_metadata",
    "handle_search_accounts",
    "handle_search_contacts",
    "handle_get_picklist_values",
    "handle_create_case",

    # Guided flow
    "run_guided_case_creation",
    "ConsolePrompter",
    "ElicitationPrompter",
    "Prompter",

    # Base
    "access_token_context",
    "instance_url_context",
    "get_salesforce_conn",
    "SalesforceConnection",
    "ToolResult",
    "CaseCreationAborted",
    "InvalidSelectionError",
    "NoMatchingRecordsError",
    "InvalidFieldValueError",
]

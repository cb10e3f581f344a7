import logging
from typing import Any, Dict, Optional

from simple_salesforce.format import format_soql

from .base import SEARCH_RESULT_LIMIT, ToolResult, handle_salesforce_error
from .schema import FieldType, load_schema

# Configure logging
logger = logging.getLogger(__name__)

CASE_PICKLIST_FIELDS = ['Priority', 'Status', 'Type', 'Origin']

GUIDED_STEPS = """GUIDED CASE CREATION PROCESS - FOLLOW THESE STEPS IN ORDER:

1. FIRST STEP: Use the 'salesforce_search_accounts' tool to help the user find and select an account
   - Ask the user for an account name to search for
   - Present the results and ask them to select an account by number

2. SECOND STEP: After the user selects an account, use the 'salesforce_search_contacts' tool
   - Call salesforce_search_contacts with the selected accountId
   - Present the contact results and ask the user to select a contact by number

3. THIRD STEP: Ask for the Subject field and wait for the response

4. FOURTH STEP: Ask for the Description field and wait for the response

5. FIFTH STEP: For each picklist field (Priority, Status, Type, Origin), use the 'salesforce_get_picklist_values' tool
   - Present the options and ask the user to select one before moving to the next field

6. FINAL STEP: Use the 'salesforce_create_case' tool with all the collected information

IMPORTANT: Ask for ONE FIELD AT A TIME and wait for the user's response before proceeding to the next field."""


async def handle_get_case_metadata(conn) -> ToolResult:
    """Describe Case: required fields, common picklists and the creation steps."""
    logger.info("Executing tool: get_case_metadata")
    try:
        schema = load_schema(conn, "Case")
    except Exception as e:
        return handle_salesforce_error(e, "getting case metadata", "Case")

    required = "\n".join(f"- {f.label} ({f.name}): {f.type.value}" for f in schema.required_fields())
    sections = ["Case Object Metadata:", "", "Required Fields:", required or "(none)", ""]

    sections.append("Picklist Fields:")
    for descriptor in schema.picklist_fields(CASE_PICKLIST_FIELDS):
        values = ", ".join(v.display_label for v in descriptor.active_picklist_values)
        sections.append(f"- {descriptor.label} ({descriptor.name}): {values}")
    sections.append("")

    sections.append(GUIDED_STEPS)
    return ToolResult.ok("\n".join(sections))


async def handle_search_accounts(conn, search_term: str) -> ToolResult:
    """Find accounts whose name contains the search term."""
    logger.info(f"Executing tool: search_accounts with search_term: {search_term}")
    try:
        accounts = conn.sobject("Account").find(
            ["Id", "Name"],
            where=format_soql("Name LIKE '%{:like}%'", search_term),
            limit=SEARCH_RESULT_LIMIT,
        )
    except Exception as e:
        return handle_salesforce_error(e, "searching accounts", "Account")

    if not accounts:
        return ToolResult.ok("No accounts found matching your search criteria.")

    lines = "\n".join(f"{idx + 1}. {a.get('Name')} (ID: {a.get('Id')})" for idx, a in enumerate(accounts))
    return ToolResult.ok(f'Found {len(accounts)} accounts matching "{search_term}":\n\n{lines}')


async def handle_search_contacts(conn, account_id: str) -> ToolResult:
    """List the contacts that belong to an account."""
    logger.info(f"Executing tool: search_contacts with account_id: {account_id}")
    try:
        account = conn.sobject("Account").retrieve(account_id)
        contacts = conn.sobject("Contact").find(
            ["Id", "Name", "Email", "Phone"], where=format_soql("AccountId = {}", account_id)
        )
    except Exception as e:
        return handle_salesforce_error(e, "searching contacts", "Contact")

    account_name = account.get("Name")
    if not contacts:
        return ToolResult.ok(f'No contacts found for account "{account_name}" (ID: {account_id}).')

    entries = [
        f"{idx + 1}. {c.get('Name')} (ID: {c.get('Id')})\n"
        f"   Email: {c.get('Email') or 'N/A'}\n"
        f"   Phone: {c.get('Phone') or 'N/A'}"
        for idx, c in enumerate(contacts)
    ]
    return ToolResult.ok(f'Found {len(contacts)} contacts for account "{account_name}":\n\n' + "\n\n".join(entries))


async def handle_get_picklist_values(conn, field_name: str, object_name: str = "Case") -> ToolResult:
    """Enumerate the allowed values of a picklist field."""
    logger.info(f"Executing tool: get_picklist_values with object_name: {object_name}, field_name: {field_name}")
    try:
        schema = load_schema(conn, object_name)
    except Exception as e:
        return handle_salesforce_error(e, "getting picklist values", object_name)

    descriptor = schema.get_field(field_name)
    if descriptor is None:
        return ToolResult.failure(f"Field '{field_name}' not found on {object_name} object.")
    if descriptor.type not in (FieldType.PICKLIST, FieldType.MULTIPICKLIST):
        return ToolResult.failure(f"Field '{field_name}' is not a picklist field.")

    lines = "\n".join(
        f"{idx + 1}. {v.display_label}{' (Default)' if v.is_default else ''}"
        for idx, v in enumerate(descriptor.active_picklist_values)
    )
    return ToolResult.ok(
        f"Picklist values for {descriptor.label} ({field_name}):\n\n{lines}\n\n"
        f"Please ask the user to select one of these values for the {descriptor.label} field."
    )


async def handle_create_case(conn, subject: str, description: str, priority: str, status: str, account_id: str, contact_id: Optional[str] = None, case_type: Optional[str] = None, origin: Optional[str] = None, additional_fields: Optional[Dict[str, Any]] = None) -> ToolResult:
    """Create a single Case from values an agent already collected."""
    logger.info(f"Executing tool: create_case with account_id: {account_id}")

    case_record: Dict[str, Any] = {
        "Subject": subject,
        "Description": description,
        "Priority": priority,
        "Status": status,
        "AccountId": account_id,
    }
    if contact_id:
        case_record["ContactId"] = contact_id
    if case_type:
        case_record["Type"] = case_type
    if origin:
        case_record["Origin"] = origin
    if additional_fields:
        case_record.update(additional_fields)

    try:
        results = conn.sobject("Case").create([case_record])
    except Exception as e:
        return handle_salesforce_error(e, "creating case", "Case")

    result = results[0] if results else None
    if result is None or not result.success:
        messages = ", ".join(e.message for e in result.errors) if result else "no result returned"
        return ToolResult.failure(f"Failed to create case: {messages}")

    case_url = f"{conn.instance_url}/lightning/r/Case/{result.id}/view"
    return ToolResult.ok(
        "The case has been created successfully!\n\n"
        "Case Details:\n\n"
        f"- Case ID: {result.id}\n"
        f"- Subject: {subject}\n"
        f"- Priority: {priority}\n"
        f"- Status: {status}\n\n"
        f"You can view the case at: {case_url}"
    )

import logging
from typing import Any, Dict, List, Optional

from .base import CaseCreationAborted, DMLResult, ToolResult, handle_salesforce_error
from .case_flow import run_guided_case_creation
from .interaction import Prompter

# Configure logging
logger = logging.getLogger(__name__)

DML_OPERATIONS = ("insert", "update", "delete", "upsert")


def format_dml_report(operation: str, results: List[DMLResult]) -> str:
    """Render a success/failure tally with per-record detail."""
    success_count = sum(1 for r in results if r.success)
    failure_count = len(results) - success_count

    lines = [
        f"{operation.upper()} operation completed.",
        f"Processed {len(results)} records:",
        f"- Successful: {success_count}",
        f"- Failed: {failure_count}",
    ]

    if success_count > 0:
        lines.append("")
        lines.append("Successful Records:")
        for idx, result in enumerate(results):
            if result.success and result.id:
                lines.append(f"Record {idx + 1} - ID: {result.id}")

    if failure_count > 0:
        lines.append("")
        lines.append("Errors:")
        for idx, result in enumerate(results):
            if result.success:
                continue
            lines.append(f"Record {idx + 1}:")
            for error in result.errors:
                line = f"  - {error.message}"
                if error.status_code:
                    line += f" [{error.status_code}]"
                lines.append(line)
                if error.fields:
                    lines.append(f"    Fields: {', '.join(error.fields)}")

    return "\n".join(lines) + "\n"


def _missing_ids(records: List[Dict[str, Any]]) -> List[int]:
    return [idx + 1 for idx, record in enumerate(records) if not isinstance(record, dict) or not record.get("Id")]


def validate_dml_request(operation: str, object_name: str, records: List[Dict[str, Any]], external_id_field: Optional[str] = None, prompter: Optional[Prompter] = None) -> Optional[ToolResult]:
    """Check DML arguments without touching Salesforce; return a failure or None."""
    if operation not in DML_OPERATIONS:
        return ToolResult.failure(f"Unsupported operation: {operation}")

    records = list(records or [])
    guided = operation == "insert" and object_name == "Case"

    if operation == "upsert" and not external_id_field:
        return ToolResult.failure("externalIdField is required for upsert operations")
    if guided and prompter is None:
        return ToolResult.failure("Guided case creation requires an interactive client")
    if not guided and not records:
        return ToolResult.failure(f"At least one record is required for {operation} operations")
    if operation in ("update", "delete"):
        missing = _missing_ids(records)
        if missing:
            positions = ", ".join(str(i) for i in missing)
            return ToolResult.failure(f"Id is required for {operation} operations (missing on record {positions})")
    return None


async def handle_dml_records(conn, operation: str, object_name: str, records: List[Dict[str, Any]], external_id_field: Optional[str] = None, prompter: Optional[Prompter] = None) -> ToolResult:
    """Insert, update, delete or upsert a batch of records.

    Inserting a Case runs the guided case creation flow instead of using the
    supplied records. Record-level failures are reported, not raised.
    """
    logger.info(f"Executing tool: dml_records with operation: {operation}, object_name: {object_name}, records: {len(records or [])}")

    invalid = validate_dml_request(operation, object_name, records, external_id_field, prompter)
    if invalid is not None:
        return invalid

    records = list(records or [])
    collection = conn.sobject(object_name)
    try:
        if operation == "insert" and object_name == "Case":
            case_record = await run_guided_case_creation(conn, prompter)
            results = collection.create([case_record])
        elif operation == "insert":
            results = collection.create(records)
        elif operation == "update":
            results = collection.update(records)
        elif operation == "delete":
            results = collection.destroy([r["Id"] for r in records])
        else:
            results = collection.upsert(records, external_id_field)
    except CaseCreationAborted as e:
        logger.warning(f"Guided case creation aborted: {e}")
        return ToolResult.failure(str(e))
    except Exception as e:
        return handle_salesforce_error(e, f"performing {operation}", object_name)

    return ToolResult.ok(format_dml_report(operation, results))

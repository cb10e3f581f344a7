import logging
from typing import List, Optional

from .base import ToolResult, format_field_value, handle_salesforce_error

# Configure logging
logger = logging.getLogger(__name__)


async def handle_query_records(conn, object_name: str, fields: List[str], where_clause: Optional[str] = None, limit: Optional[int] = None) -> ToolResult:
    """Query records of one object and render each as a line of field/value pairs."""
    logger.info(f"Executing tool: query_records with object_name: {object_name}, fields: {fields}, where_clause: {where_clause}, limit: {limit}")

    if not fields:
        return ToolResult.failure("At least one field is required to query records.")
    if limit is not None and int(limit) < 1:
        return ToolResult.failure("limit must be a positive integer.")

    try:
        records = conn.sobject(object_name).find(fields, where=where_clause, limit=limit)
    except Exception as e:
        return handle_salesforce_error(e, "executing query", object_name)

    if not records:
        return ToolResult.ok("Query returned 0 records.")

    lines = []
    for idx, record in enumerate(records):
        pairs = ", ".join(f"{f}: {format_field_value(record, f)}" for f in fields)
        lines.append(f"Record {idx + 1}: {pairs}")

    return ToolResult.ok(f"Query returned {len(records)} records:\n\n" + "\n".join(lines))

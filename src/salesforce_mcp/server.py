import contextlib
import logging
import os
import base64
from collections.abc import AsyncIterator
from typing import Any, Callable, Dict, Optional

import click
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.sse import SseServerTransport
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Mount, Route
from starlette.types import Receive, Scope, Send

from .config import LOG_FORMAT, SALESFORCE_MCP_SERVER_PORT, parse_auth_data
from .tools import (
    access_token_context, instance_url_context, get_salesforce_conn,
    ElicitationPrompter, Prompter, ToolResult,
    handle_query_records, handle_dml_records, validate_dml_request,
    handle_get_case_metadata, handle_search_accounts, handle_search_contacts,
    handle_get_picklist_values, handle_create_case,
)
from .tools.base import SalesforceToolError

# Configure logging
logger = logging.getLogger(__name__)


def extract_auth_credentials(request_or_scope) -> tuple[str, str]:
    """Extract access token and instance URL from request headers.

    Returns:
        tuple: (access_token, instance_url)
    """
    auth_data = os.getenv("AUTH_DATA")

    if not auth_data:
        # Get headers based on input type
        if hasattr(request_or_scope, 'headers'):
            # SSE request object
            header_value = request_or_scope.headers.get(b'x-auth-data')
            if header_value:
                auth_data = base64.b64decode(header_value).decode('utf-8')
        elif isinstance(request_or_scope, dict) and 'headers' in request_or_scope:
            # StreamableHTTP scope object
            headers = dict(request_or_scope.get("headers", []))
            header_value = headers.get(b'x-auth-data')
            if header_value:
                auth_data = base64.b64decode(header_value).decode('utf-8')

    return parse_auth_data(auth_data or "")


def list_tool_definitions() -> list[types.Tool]:
    return [
        types.Tool(
            name="salesforce_query_records",
            description="Query records from any Salesforce object. Each record is returned as one line of field/value pairs.",
            inputSchema={
                "type": "object",
                "required": ["objectName", "fields"],
                "properties": {
                    "objectName": {"type": "string", "description": "API name of the object to query (e.g. Account, Case, Custom__c)"},
                    "fields": {"type": "array", "items": {"type": "string"}, "description": "Fields to retrieve; relationship fields such as Account.Name are allowed"},
                    "whereClause": {"type": "string", "description": "Optional SOQL WHERE clause without the WHERE keyword"},
                    "limit": {"type": "integer", "description": "Maximum number of records to return", "minimum": 1}
                }
            },
            annotations=types.ToolAnnotations(**{"category": "SALESFORCE_QUERY", "readOnlyHint": True})
        ),
        types.Tool(
            name="salesforce_dml_records",
            description=(
                "Perform data manipulation operations on Salesforce records:\n"
                "  - insert: Create new records (inserting a Case starts guided case creation)\n"
                "  - update: Modify existing records (requires Id)\n"
                "  - delete: Remove records (requires Id)\n"
                "  - upsert: Insert or update based on external ID field"
            ),
            inputSchema={
                "type": "object",
                "required": ["operation", "objectName", "records"],
                "properties": {
                    "operation": {"type": "string", "enum": ["insert", "update", "delete", "upsert"], "description": "Type of DML operation to perform"},
                    "objectName": {"type": "string", "description": "API name of the object"},
                    "records": {"type": "array", "items": {"type": "object"}, "description": "Array of records to process"},
                    "externalIdField": {"type": "string", "description": "External ID field name, required for upsert operations"}
                }
            },
            annotations=types.ToolAnnotations(**{"category": "SALESFORCE_DML", "destructiveHint": True})
        ),
        types.Tool(
            name="salesforce_get_case_metadata",
            description="Get metadata about the Case object including required fields, picklist values and the steps for creating a case.",
            inputSchema={"type": "object", "properties": {}},
            annotations=types.ToolAnnotations(**{"category": "SALESFORCE_CASE", "readOnlyHint": True})
        ),
        types.Tool(
            name="salesforce_search_accounts",
            description="Search for accounts to associate with a case.",
            inputSchema={
                "type": "object",
                "required": ["searchTerm"],
                "properties": {
                    "searchTerm": {"type": "string", "description": "Search term to filter accounts by name"}
                }
            },
            annotations=types.ToolAnnotations(**{"category": "SALESFORCE_CASE", "readOnlyHint": True})
        ),
        types.Tool(
            name="salesforce_search_contacts",
            description="Search for contacts related to an account.",
            inputSchema={
                "type": "object",
                "required": ["accountId"],
                "properties": {
                    "accountId": {"type": "string", "description": "ID of the account to find contacts for"}
                }
            },
            annotations=types.ToolAnnotations(**{"category": "SALESFORCE_CASE", "readOnlyHint": True})
        ),
        types.Tool(
            name="salesforce_get_picklist_values",
            description="Get picklist values for a specific field on the Case object.",
            inputSchema={
                "type": "object",
                "required": ["fieldName"],
                "properties": {
                    "fieldName": {"type": "string", "description": "API name of the field (e.g. Priority, Status, Type, Origin)"}
                }
            },
            annotations=types.ToolAnnotations(**{"category": "SALESFORCE_CASE", "readOnlyHint": True})
        ),
        types.Tool(
            name="salesforce_create_case",
            description="Create a new case with the provided information.",
            inputSchema={
                "type": "object",
                "required": ["subject", "description", "priority", "status", "accountId"],
                "properties": {
                    "subject": {"type": "string", "description": "Subject of the case"},
                    "description": {"type": "string", "description": "Detailed description of the issue"},
                    "priority": {"type": "string", "description": "Priority of the case (e.g., High, Medium, Low)"},
                    "status": {"type": "string", "description": "Status of the case (e.g., New, Working, Escalated)"},
                    "accountId": {"type": "string", "description": "ID of the account associated with the case"},
                    "contactId": {"type": "string", "description": "ID of the contact associated with the case"},
                    "caseType": {"type": "string", "description": "Type of the case (e.g., Question, Problem, Feature Request)"},
                    "origin": {"type": "string", "description": "Origin of the case (e.g., Email, Phone, Web)"},
                    "additionalFields": {"type": "object", "description": "Any additional fields to set on the case"}
                }
            },
            annotations=types.ToolAnnotations(**{"category": "SALESFORCE_CASE"})
        ),
    ]


async def dispatch_tool(name: str, arguments: Dict[str, Any], prompter: Optional[Prompter] = None, connect: Callable = get_salesforce_conn) -> ToolResult:
    """Run the handler behind a tool name and return its result."""
    try:
        if name == "salesforce_query_records":
            return await handle_query_records(
                connect(),
                arguments["objectName"],
                arguments["fields"],
                where_clause=arguments.get("whereClause"),
                limit=arguments.get("limit"),
            )
        elif name == "salesforce_dml_records":
            dml_arguments = dict(
                operation=arguments["operation"],
                object_name=arguments["objectName"],
                records=arguments.get("records", []),
                external_id_field=arguments.get("externalIdField"),
                prompter=prompter,
            )
            # Reject bad arguments before a connection (and possibly a login) is made
            invalid = validate_dml_request(**dml_arguments)
            if invalid is not None:
                return invalid
            return await handle_dml_records(connect(), **dml_arguments)
        elif name == "salesforce_get_case_metadata":
            return await handle_get_case_metadata(connect())
        elif name == "salesforce_search_accounts":
            return await handle_search_accounts(connect(), arguments["searchTerm"])
        elif name == "salesforce_search_contacts":
            return await handle_search_contacts(connect(), arguments["accountId"])
        elif name == "salesforce_get_picklist_values":
            return await handle_get_picklist_values(connect(), arguments["fieldName"])
        elif name == "salesforce_create_case":
            return await handle_create_case(
                connect(),
                subject=arguments["subject"],
                description=arguments["description"],
                priority=arguments["priority"],
                status=arguments["status"],
                account_id=arguments["accountId"],
                contact_id=arguments.get("contactId"),
                case_type=arguments.get("caseType"),
                origin=arguments.get("origin"),
                additional_fields=arguments.get("additionalFields"),
            )
        else:
            return ToolResult.failure(f"Unknown tool: {name}")
    except KeyError as e:
        return ToolResult.failure(f"Missing required argument: {e.args[0]}")
    except Exception as e:
        logger.exception(f"Error executing tool {name}: {e}")
        return ToolResult.failure(f"Error: {str(e)}")


def create_server() -> Server:
    # Create the MCP server instance
    app = Server("salesforce-case-mcp-server")

    @app.list_tools()
    async def list_tools() -> list[types.Tool]:
        return list_tool_definitions()

    @app.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
        ctx = app.request_context
        prompter = ElicitationPrompter(ctx.session, related_request_id=ctx.request_id)
        result = await dispatch_tool(name, arguments or {}, prompter=prompter)
        if result.is_error:
            # The server reports raised errors as isError results with this text
            raise SalesforceToolError(result.text)
        return [types.TextContent(type="text", text=result.text)]

    return app


@click.command()
@click.option("--port", default=SALESFORCE_MCP_SERVER_PORT, help="Port to listen on for HTTP")
@click.option("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
@click.option("--json-response", is_flag=True, default=False, help="Enable JSON responses for StreamableHTTP instead of SSE streams")
def main(port: int, log_level: str, json_response: bool) -> int:
    # Configure logging
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
    )

    app = create_server()

    # Set up SSE transport
    sse = SseServerTransport("/messages/")

    async def handle_sse(request):
        logger.info("Handling SSE connection")

        # Extract auth credentials from headers
        access_token, instance_url = extract_auth_credentials(request)

        # Set the access token and instance URL in context for this request
        access_token_token = access_token_context.set(access_token or "")
        instance_url_token = instance_url_context.set(instance_url or "")
        try:
            async with sse.connect_sse(request.scope, request.receive, request._send) as streams:
                await app.run(streams[0], streams[1], app.create_initialization_options())
        finally:
            access_token_context.reset(access_token_token)
            instance_url_context.reset(instance_url_token)

        return Response()

    # Set up StreamableHTTP transport; stateful so elicitation can reach the client
    session_manager = StreamableHTTPSessionManager(
        app=app,
        event_store=None,
        json_response=json_response,
        stateless=False,
    )

    async def handle_streamable_http(scope: Scope, receive: Receive, send: Send) -> None:
        logger.info("Handling StreamableHTTP request")

        # Extract auth credentials from headers
        access_token, instance_url = extract_auth_credentials(scope)

        # Set the access token and instance URL in context for this request
        access_token_token = access_token_context.set(access_token or "")
        instance_url_token = instance_url_context.set(instance_url or "")
        try:
            await session_manager.handle_request(scope, receive, send)
        finally:
            access_token_context.reset(access_token_token)
            instance_url_context.reset(instance_url_token)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        """Context manager for session manager."""
        async with session_manager.run():
            logger.info("Application started with dual transports!")
            try:
                yield
            finally:
                logger.info("Application shutting down...")

    # Create an ASGI application with routes for both transports
    starlette_app = Starlette(
        debug=False,
        routes=[
            Route("/sse", endpoint=handle_sse, methods=["GET"]),
            Mount("/messages/", app=sse.handle_post_message),
            Mount("/mcp", app=handle_streamable_http),
        ],
        lifespan=lifespan,
    )

    logger.info(f"Server starting on port {port} with dual transports:")
    logger.info(f"  - SSE endpoint: http://localhost:{port}/sse")
    logger.info(f"  - StreamableHTTP endpoint: http://localhost:{port}/mcp")

    import uvicorn
    uvicorn.run(starlette_app, host="0.0.0.0", port=port)
    return 0


if __name__ == "__main__":
    main()

import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from simple_salesforce import Salesforce
from simple_salesforce.exceptions import SalesforceError

from ..config import SalesforceCredentials

# Configure logging
logger = logging.getLogger(__name__)

# Context variables to store the access token and instance URL for each request
access_token_context: ContextVar[str] = ContextVar('access_token')
instance_url_context: ContextVar[str] = ContextVar('instance_url')

# sObject Collections accept at most 200 records per request
COLLECTION_BATCH_SIZE = 200

# Upper bound on name searches offered to the user
SEARCH_RESULT_LIMIT = 50


class SalesforceToolError(Exception):
    """Base class for errors raised by the Salesforce tools."""


class CaseCreationAborted(SalesforceToolError):
    """The guided case creation flow was abandoned; nothing was written."""


class InvalidSelectionError(CaseCreationAborted):
    pass


class NoMatchingRecordsError(CaseCreationAborted):
    pass


class InvalidFieldValueError(CaseCreationAborted):
    pass


@dataclass
class ToolResult:
    """Outcome of a tool handler: text for the caller plus an error flag."""

    text: str
    is_error: bool = False

    @classmethod
    def ok(cls, text: str) -> "ToolResult":
        return cls(text=text, is_error=False)

    @classmethod
    def failure(cls, text: str) -> "ToolResult":
        return cls(text=text, is_error=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": [{"type": "text", "text": self.text}],
            "isError": self.is_error,
        }


@dataclass
class DMLError:
    message: str
    status_code: Optional[str] = None
    fields: List[str] = field(default_factory=list)

    @classmethod
    def from_response(cls, data: Any) -> "DMLError":
        if not isinstance(data, dict):
            return cls(message=str(data))
        fields = data.get('fields') or []
        if isinstance(fields, str):
            fields = [fields]
        return cls(
            message=data.get('message', ''),
            status_code=data.get('statusCode') or data.get('errorCode'),
            fields=list(fields),
        )


@dataclass
class DMLResult:
    """Per-record outcome of a create/update/delete/upsert call."""

    success: bool
    id: Optional[str] = None
    errors: List[DMLError] = field(default_factory=list)
    created: Optional[bool] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "DMLResult":
        errors = data.get('errors') or []
        if isinstance(errors, dict):
            errors = [errors]
        return cls(
            success=bool(data.get('success')),
            id=data.get('id'),
            errors=[DMLError.from_response(e) for e in errors],
            created=data.get('created'),
        )


def _chunks(items: List[Any], size: int = COLLECTION_BATCH_SIZE) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _strip_attributes(record: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {}
    for key, value in record.items():
        if key == 'attributes':
            continue
        if isinstance(value, dict):
            value = _strip_attributes(value)
        cleaned[key] = value
    return cleaned


class SObjectCollection:
    """Record operations for one sObject type."""

    def __init__(self, connection: "SalesforceConnection", name: str):
        self._connection = connection
        self.name = name

    @property
    def _sf(self) -> Salesforce:
        return self._connection.sf

    def describe(self) -> Dict[str, Any]:
        return dict(getattr(self._sf, self.name).describe())

    def find(self, fields: List[str], where: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = f"SELECT {', '.join(fields)} FROM {self.name}"
        if where:
            query += f" WHERE {where}"
        if limit:
            query += f" LIMIT {int(limit)}"
        return self._connection.query(query)

    def retrieve(self, record_id: str) -> Dict[str, Any]:
        return _strip_attributes(dict(getattr(self._sf, self.name).get(record_id)))

    def _with_type(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [{"attributes": {"type": self.name}, **record} for record in records]

    def _collection_call(self, method: str, path: str, records: List[Dict[str, Any]]) -> List[DMLResult]:
        results = []
        for batch in _chunks(self._with_type(records)):
            response = self._sf.restful(
                path, method=method, json={"allOrNone": False, "records": batch}
            )
            results.extend(DMLResult.from_response(r) for r in response or [])
        return results

    def create(self, records: List[Dict[str, Any]]) -> List[DMLResult]:
        return self._collection_call('POST', 'composite/sobjects', records)

    def update(self, records: List[Dict[str, Any]]) -> List[DMLResult]:
        return self._collection_call('PATCH', 'composite/sobjects', records)

    def upsert(self, records: List[Dict[str, Any]], external_id_field: str) -> List[DMLResult]:
        return self._collection_call(
            'PATCH', f'composite/sobjects/{self.name}/{external_id_field}', records
        )

    def destroy(self, ids: List[str]) -> List[DMLResult]:
        results = []
        for batch in _chunks(list(ids)):
            response = self._sf.restful(
                'composite/sobjects',
                method='DELETE',
                params={"ids": ",".join(batch), "allOrNone": "false"},
            )
            results.extend(DMLResult.from_response(r) for r in response or [])
        return results


class SalesforceConnection:
    """Session handle handing out per-object record operations."""

    def __init__(self, sf: Salesforce):
        self.sf = sf

    @property
    def instance_url(self) -> str:
        base_url = getattr(self.sf, 'sf_instance', '') or ''
        if base_url and not base_url.startswith('http'):
            base_url = f"https://{base_url}"
        return base_url

    def sobject(self, name: str) -> SObjectCollection:
        return SObjectCollection(self, name)

    def query(self, soql: str) -> List[Dict[str, Any]]:
        result = self.sf.query_all(soql)
        return [_strip_attributes(dict(r)) for r in result.get('records', [])]


def get_salesforce_connection(access_token: str, instance_url: str) -> SalesforceConnection:
    """Create Salesforce connection with access token."""
    return SalesforceConnection(Salesforce(instance_url=instance_url, session_id=access_token))


def connect_from_credentials(credentials: SalesforceCredentials) -> SalesforceConnection:
    """Open a session from environment-style credentials."""
    if credentials.has_session:
        return get_salesforce_connection(credentials.access_token, credentials.instance_url)
    if credentials.has_login:
        return SalesforceConnection(Salesforce(
            username=credentials.username,
            password=credentials.password,
            security_token=credentials.security_token,
            domain=credentials.domain,
        ))
    raise RuntimeError(
        "Salesforce credentials not configured. Set SALESFORCE_ACCESS_TOKEN and SALESFORCE_INSTANCE_URL, "
        "or SALESFORCE_USERNAME, SALESFORCE_PASSWORD and SALESFORCE_SECURITY_TOKEN."
    )


def get_salesforce_conn() -> SalesforceConnection:
    """Get the Salesforce connection from context - created fresh each time.

    Falls back to credentials from the environment when the request carried none.
    """
    access_token = access_token_context.get("")
    instance_url = instance_url_context.get("")

    if access_token and instance_url:
        return get_salesforce_connection(access_token, instance_url)

    return connect_from_credentials(SalesforceCredentials.from_env())


def describe_salesforce_error(e: Exception) -> str:
    """Extract the most useful message from a Salesforce error."""
    if isinstance(e, SalesforceError):
        content = getattr(e, 'content', None)
        if isinstance(content, list) and content:
            messages = [item.get('message', '') for item in content if isinstance(item, dict)]
            messages = [m for m in messages if m]
            if messages:
                return "; ".join(messages)
        if isinstance(content, dict) and content.get('message'):
            return content['message']
    return str(e)


def handle_salesforce_error(e: Exception, operation: str, object_type: str = "") -> ToolResult:
    """Log a failed remote call and turn it into an error result."""
    target = f" on {object_type}" if object_type else ""
    if isinstance(e, SalesforceError):
        logger.error(f"Salesforce API error during {operation}{target}: {e}")
    else:
        logger.exception(f"Error during {operation}{target}: {e}")
    return ToolResult.failure(f"Error {operation}: {describe_salesforce_error(e)}")


def format_field_value(record: Dict[str, Any], field_name: str) -> str:
    """Resolve a possibly dotted field path (e.g. Account.Name) for display."""
    value: Any = record
    for part in field_name.split('.'):
        if not isinstance(value, dict):
            value = None
            break
        value = value.get(part)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)

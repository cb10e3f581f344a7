"""Guided, prompt-driven assembly of a Case record.

The flow is a fixed sequence of steps. Each step receives the current
``CaseDraft`` and returns an updated one, or raises ``CaseCreationAborted``
(or one of its subclasses) which unwinds the whole flow. Nothing is written to
Salesforce here; the caller creates the record from the returned payload.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Sequence, TypeVar

from simple_salesforce.format import format_soql

from .base import (
    SEARCH_RESULT_LIMIT,
    CaseCreationAborted,
    InvalidFieldValueError,
    InvalidSelectionError,
    NoMatchingRecordsError,
)
from .interaction import Prompter
from .schema import FieldDescriptor, FieldType, ObjectSchema, load_schema

# Configure logging
logger = logging.getLogger(__name__)

T = TypeVar("T")

STANDARD_PICKLISTS = ("Origin", "Status", "Priority")
HANDLED_FIELDS = {"AccountId", "ContactId", "Subject", "Description", *STANDARD_PICKLISTS}


@dataclass(frozen=True)
class CaseDraft:
    """Field values collected so far for the Case being built."""

    fields: Mapping[str, Any] = field(default_factory=dict)
    # Display names of the records chosen for lookup fields, keyed by field
    names: Mapping[str, str] = field(default_factory=dict)

    def with_field(self, name: str, value: Any) -> "CaseDraft":
        return replace(self, fields={**self.fields, name: value})

    def with_lookup(self, name: str, record: Mapping[str, Any]) -> "CaseDraft":
        draft = self.with_field(name, record["Id"])
        if record.get("Name"):
            draft = replace(draft, names={**draft.names, name: record["Name"]})
        return draft

    def has(self, name: str) -> bool:
        return name in self.fields

    def display_value(self, name: str) -> str:
        value = self.fields[name]
        if name in self.names:
            return f"{self.names[name]} ({value})"
        return str(value)

    def to_record(self) -> Dict[str, Any]:
        return dict(self.fields)


@dataclass
class FlowContext:
    conn: Any
    prompter: Prompter
    schema: ObjectSchema


def parse_selection(answer: str, count: int, what: str) -> int:
    """Turn a 1-based answer into a list index, rejecting anything outside [1, count]."""
    try:
        selection = int(answer.strip())
    except ValueError:
        selection = 0
    if selection < 1 or selection > count:
        raise InvalidSelectionError(f"Invalid {what} selection. Please enter a valid number from the list.")
    return selection - 1


def numbered(options: Sequence[T], label: Callable[[T], str]) -> str:
    return "\n".join(f"{idx + 1}. {label(option)}" for idx, option in enumerate(options))


async def select_choice(prompter: Prompter, title: str, options: Sequence[T], label: Callable[[T], str], what: str) -> T:
    answer = await prompter.prompt(f"{title}\n{numbered(options, label)}")
    return options[parse_selection(answer, len(options), what)]


async def search_and_select(conn, prompter: Prompter, object_name: str, label: str) -> Dict[str, Any]:
    """Search an object by name and pick one match; a single match is taken as-is."""
    search_term = await prompter.prompt(f"Enter a search string to find {label}:")
    records = conn.sobject(object_name).find(
        ["Id", "Name"],
        where=format_soql("Name LIKE '%{:like}%'", search_term),
        limit=SEARCH_RESULT_LIMIT,
    )

    if not records:
        raise NoMatchingRecordsError(
            f"No {object_name} records found matching your search criteria. "
            "Please try again with a different search term."
        )

    if len(records) == 1:
        logger.info(f"Using the only matching {object_name}: {records[0].get('Name')}")
        return records[0]

    return await select_choice(prompter, f"Select {label}:", records, lambda r: r.get("Name", ""), object_name)


async def prompt_until_filled(prompter: Prompter, message: str, reminder: str) -> str:
    answer = await prompter.prompt(message)
    while not answer.strip():
        answer = await prompter.prompt(f"{reminder}\n{message}")
    return answer.strip()


async def select_picklist_value(prompter: Prompter, descriptor: FieldDescriptor) -> str:
    chosen = await select_choice(
        prompter,
        f"Select a {descriptor.label}:",
        descriptor.active_picklist_values,
        lambda v: v.display_label,
        descriptor.label,
    )
    return chosen.value


async def _select_account(draft: CaseDraft, ctx: FlowContext) -> CaseDraft:
    account = await search_and_select(ctx.conn, ctx.prompter, "Account", "an account")
    return draft.with_lookup("AccountId", account)


async def _select_contact(draft: CaseDraft, ctx: FlowContext) -> CaseDraft:
    contacts = ctx.conn.sobject("Contact").find(
        ["Id", "Name"], where=format_soql("AccountId = {}", draft.fields["AccountId"])
    )
    if not contacts:
        return draft

    answer = await ctx.prompter.prompt(
        "Select a contact for this case (or press Enter to skip):\n"
        + numbered(contacts, lambda c: c.get("Name", ""))
    )
    if not answer.strip():
        return draft

    contact = contacts[parse_selection(answer, len(contacts), "contact")]
    return draft.with_lookup("ContactId", contact)


async def _collect_web_contact(draft: CaseDraft, ctx: FlowContext) -> CaseDraft:
    if draft.has("ContactId"):
        return draft

    logger.info("No contact selected, collecting web contact information")
    email = await prompt_until_filled(
        ctx.prompter,
        "No contact selected. Web Email (required):",
        "Web Email is required when no contact is selected. Please enter a valid email address.",
    )
    name = await prompt_until_filled(
        ctx.prompter,
        "Web Name (required):",
        "Web Name is required when no contact is selected. Please enter a name.",
    )
    return draft.with_field("SuppliedEmail", email).with_field("SuppliedName", name)


async def _collect_subject_and_description(draft: CaseDraft, ctx: FlowContext) -> CaseDraft:
    subject = await prompt_until_filled(
        ctx.prompter, "Enter a subject for this case:", "A subject is required."
    )
    draft = draft.with_field("Subject", subject)

    description = await ctx.prompter.prompt("Enter a description for this case (press Enter to skip):")
    if description.strip():
        draft = draft.with_field("Description", description)
    return draft


async def _select_standard_picklists(draft: CaseDraft, ctx: FlowContext) -> CaseDraft:
    for name in STANDARD_PICKLISTS:
        descriptor = ctx.schema.get_field(name)
        if draft.has(name) or descriptor is None or not descriptor.active_picklist_values:
            continue
        draft = draft.with_field(name, await select_picklist_value(ctx.prompter, descriptor))
    return draft


async def _prompt_reference(draft: CaseDraft, descriptor: FieldDescriptor, ctx: FlowContext) -> CaseDraft:
    if not descriptor.reference_to:
        return await _prompt_text(draft, descriptor, ctx)
    record = await search_and_select(ctx.conn, ctx.prompter, descriptor.reference_to[0], descriptor.label)
    return draft.with_lookup(descriptor.name, record)


async def _prompt_picklist(draft: CaseDraft, descriptor: FieldDescriptor, ctx: FlowContext) -> CaseDraft:
    if not descriptor.active_picklist_values:
        return await _prompt_text(draft, descriptor, ctx)
    return draft.with_field(descriptor.name, await select_picklist_value(ctx.prompter, descriptor))


async def _prompt_boolean(draft: CaseDraft, descriptor: FieldDescriptor, ctx: FlowContext) -> CaseDraft:
    answer = await ctx.prompter.prompt(f"{descriptor.label} (true/false):")
    return draft.with_field(descriptor.name, answer.strip().lower() == "true")


async def _prompt_number(draft: CaseDraft, descriptor: FieldDescriptor, ctx: FlowContext) -> CaseDraft:
    answer = await ctx.prompter.prompt(f"{descriptor.label}:")
    try:
        value = float(answer)
    except ValueError:
        value = math.nan
    if not math.isfinite(value):
        raise InvalidFieldValueError(f"Invalid number format for {descriptor.label}")
    if descriptor.type.is_integral and value.is_integer():
        value = int(value)
    return draft.with_field(descriptor.name, value)


async def _prompt_date(draft: CaseDraft, descriptor: FieldDescriptor, ctx: FlowContext) -> CaseDraft:
    return draft.with_field(descriptor.name, await ctx.prompter.prompt(f"{descriptor.label} (YYYY-MM-DD):"))


async def _prompt_datetime(draft: CaseDraft, descriptor: FieldDescriptor, ctx: FlowContext) -> CaseDraft:
    return draft.with_field(descriptor.name, await ctx.prompter.prompt(f"{descriptor.label} (YYYY-MM-DDTHH:MM:SS):"))


async def _prompt_text(draft: CaseDraft, descriptor: FieldDescriptor, ctx: FlowContext) -> CaseDraft:
    message = f"{descriptor.label}:"
    if descriptor.type.is_text:
        # Required text must not be sent blank
        value = await prompt_until_filled(ctx.prompter, message, f"{descriptor.label} is required.")
    else:
        value = await ctx.prompter.prompt(message)
    return draft.with_field(descriptor.name, value)


FieldPrompt = Callable[[CaseDraft, FieldDescriptor, FlowContext], Awaitable[CaseDraft]]

FIELD_PROMPTS: Dict[FieldType, FieldPrompt] = {
    FieldType.REFERENCE: _prompt_reference,
    FieldType.PICKLIST: _prompt_picklist,
    FieldType.BOOLEAN: _prompt_boolean,
    FieldType.DATE: _prompt_date,
    FieldType.DATETIME: _prompt_datetime,
    FieldType.DOUBLE: _prompt_number,
    FieldType.INT: _prompt_number,
    FieldType.LONG: _prompt_number,
    FieldType.CURRENCY: _prompt_number,
    FieldType.PERCENT: _prompt_number,
}


async def _collect_remaining_required(draft: CaseDraft, ctx: FlowContext) -> CaseDraft:
    for descriptor in ctx.schema.required_fields():
        if descriptor.name in HANDLED_FIELDS or draft.has(descriptor.name):
            continue
        prompt_field = FIELD_PROMPTS.get(descriptor.type, _prompt_text)
        draft = await prompt_field(draft, descriptor, ctx)
    return draft


def summarize(draft: CaseDraft, schema: ObjectSchema) -> str:
    lines = [f"{schema.label_for(name)}: {draft.display_value(name)}" for name in draft.fields]
    return "Case Details Summary:\n" + "\n".join(lines)


async def _confirm(draft: CaseDraft, ctx: FlowContext) -> CaseDraft:
    summary = summarize(draft, ctx.schema)
    logger.info(summary)
    answer = await ctx.prompter.prompt(f"{summary}\n\nCreate this case? (Y/N):")
    if answer.strip().lower() != "y":
        raise CaseCreationAborted("Case creation canceled by user.")
    return draft


FlowStep = Callable[[CaseDraft, FlowContext], Awaitable[CaseDraft]]

CASE_CREATION_STEPS: List[FlowStep] = [
    _select_account,
    _select_contact,
    _collect_web_contact,
    _collect_subject_and_description,
    _select_standard_picklists,
    _collect_remaining_required,
    _confirm,
]


async def run_guided_case_creation(conn, prompter: Prompter) -> Dict[str, Any]:
    """Walk the user through building a Case and return the confirmed record."""
    ctx = FlowContext(conn=conn, prompter=prompter, schema=load_schema(conn, "Case"))
    draft = CaseDraft()
    for step in CASE_CREATION_STEPS:
        draft = await step(draft, ctx)
    return draft.to_record()

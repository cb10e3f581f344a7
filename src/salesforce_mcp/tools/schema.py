"""Typed view over sObject describe metadata."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

# System generated on insert, never prompted for
SYSTEM_GENERATED_FIELDS = {'CaseNumber'}


class FieldType(str, Enum):
    STRING = 'string'
    TEXTAREA = 'textarea'
    EMAIL = 'email'
    PHONE = 'phone'
    URL = 'url'
    BOOLEAN = 'boolean'
    DATE = 'date'
    DATETIME = 'datetime'
    TIME = 'time'
    DOUBLE = 'double'
    INT = 'int'
    LONG = 'long'
    CURRENCY = 'currency'
    PERCENT = 'percent'
    PICKLIST = 'picklist'
    MULTIPICKLIST = 'multipicklist'
    REFERENCE = 'reference'
    ID = 'id'
    UNKNOWN = 'unknown'

    @classmethod
    def parse(cls, raw: Optional[str]) -> "FieldType":
        try:
            return cls((raw or '').lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_numeric(self) -> bool:
        return self in (FieldType.DOUBLE, FieldType.INT, FieldType.LONG, FieldType.CURRENCY, FieldType.PERCENT)

    @property
    def is_text(self) -> bool:
        return self in (FieldType.STRING, FieldType.TEXTAREA, FieldType.EMAIL, FieldType.PHONE, FieldType.URL)

    @property
    def is_integral(self) -> bool:
        return self in (FieldType.INT, FieldType.LONG)


@dataclass
class PicklistValue:
    label: str
    value: str
    is_default: bool = False
    active: bool = True

    @classmethod
    def from_describe(cls, data: Dict[str, Any]) -> "PicklistValue":
        return cls(
            label=data.get('label') or '',
            value=data.get('value') or '',
            is_default=bool(data.get('defaultValue')),
            active=data.get('active', True) is not False,
        )

    @property
    def display_label(self) -> str:
        return self.label or self.value


@dataclass
class FieldDescriptor:
    name: str
    label: str
    type: FieldType
    nillable: bool = True
    createable: bool = True
    defaulted_on_create: bool = False
    picklist_values: List[PicklistValue] = field(default_factory=list)
    reference_to: List[str] = field(default_factory=list)

    @classmethod
    def from_describe(cls, data: Dict[str, Any]) -> "FieldDescriptor":
        name = data.get('name', '')
        return cls(
            name=name,
            label=data.get('label') or name,
            type=FieldType.parse(data.get('type')),
            nillable=bool(data.get('nillable', True)),
            createable=bool(data.get('createable', True)),
            defaulted_on_create=bool(data.get('defaultedOnCreate', False)),
            picklist_values=[PicklistValue.from_describe(v) for v in data.get('picklistValues') or []],
            reference_to=list(data.get('referenceTo') or []),
        )

    @property
    def is_required_on_create(self) -> bool:
        return (
            not self.nillable
            and not self.defaulted_on_create
            and self.createable
            and self.name not in SYSTEM_GENERATED_FIELDS
        )

    @property
    def active_picklist_values(self) -> List[PicklistValue]:
        return [v for v in self.picklist_values if v.active]


@dataclass
class ObjectSchema:
    name: str
    fields: List[FieldDescriptor]

    @classmethod
    def from_describe(cls, data: Dict[str, Any]) -> "ObjectSchema":
        return cls(
            name=data.get('name', ''),
            fields=[FieldDescriptor.from_describe(f) for f in data.get('fields') or []],
        )

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        for descriptor in self.fields:
            if descriptor.name == name:
                return descriptor
        return None

    def required_fields(self) -> List[FieldDescriptor]:
        return [f for f in self.fields if f.is_required_on_create]

    def picklist_fields(self, names: Iterable[str]) -> List[FieldDescriptor]:
        wanted = list(names)
        found = [self.get_field(n) for n in wanted]
        return [f for f in found if f is not None and f.type == FieldType.PICKLIST]

    def label_for(self, name: str) -> str:
        descriptor = self.get_field(name)
        return descriptor.label if descriptor else name


def load_schema(conn, object_name: str) -> ObjectSchema:
    """Describe an object through the connection and wrap the result."""
    described = conn.sobject(object_name).describe()
    schema = ObjectSchema.from_describe(described)
    if not schema.name:
        schema.name = object_name
    return schema

"""
Field types and special-field roles.

A schema's properties are JSON-Schema fragments (plain dicts). dynamodm adds
two things on top of plain JSON Schema:

1. Extended types, carried under the ``extendedType`` key, for values that
   have no JSON representation (timestamps and binary data). Each validator
   pass interprets them: the plain pass checks for ``bytes`` and
   timezone-aware ``datetime`` values (loaded timestamps are aware UTC),
   the marshal pass converts to the stored representation, the unmarshal
   pass converts back.
2. Field roles. Special fields (the document id, the type discriminator, the
   optimistic-concurrency version and the created/updated timestamps) are
   declared by using one of the built-in role fields below as a property's
   descriptor. Schemas find them by reading ``FieldType.role``.

Example:
    comment = Schema('comment', {
        'properties': {
            'id': DocIdField,
            'text': {'type': 'string'},
            'created': CreatedAtField,
        }
    })
"""

from enum import Enum
from typing import Any, Optional


EXTENDED_TYPE_KEY = 'extendedType'


class AttributeType(str, Enum):
    """Native DynamoDB attribute types usable in key schemas."""
    STRING = "S"
    NUMBER = "N"
    BINARY = "B"


class ExtendedType(str, Enum):
    """Value types stored in a different representation than they are used in."""
    TIMESTAMP = "timestamp"  # datetime, stored as epoch milliseconds
    BINARY = "binary"        # bytes


class FieldRole(Enum):
    """Special meaning of a schema property."""
    NONE = "none"
    ID = "id"
    TYPE = "type"
    VERSION = "version"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class FieldType(dict):
    """A JSON-Schema property descriptor carrying a field role."""

    def __init__(self, *args, role: FieldRole = FieldRole.NONE, **kwargs):
        super().__init__(*args, **kwargs)
        self.role = role

    def copy(self) -> 'FieldType':
        return FieldType(self, role=self.role)

    def __repr__(self) -> str:
        if self.role is FieldRole.NONE:
            return f"FieldType({dict.__repr__(self)})"
        return f"FieldType({dict.__repr__(self)}, role={self.role.name})"


def field_role(descriptor: Any) -> FieldRole:
    """Role of a property descriptor (NONE for plain dicts)."""
    return getattr(descriptor, 'role', FieldRole.NONE)


def extended_type_of(descriptor: Any) -> Optional[ExtendedType]:
    """Extended type of a property descriptor, if it declares a known one."""
    if not isinstance(descriptor, dict):
        return None
    value = descriptor.get(EXTENDED_TYPE_KEY)
    if value is None:
        return None
    try:
        return ExtendedType(value)
    except ValueError:
        return None


def attribute_type_for(descriptor: Any) -> Optional[AttributeType]:
    """Map a property descriptor onto a native key attribute type.

    Returns:
        AttributeType, or None when values of this type cannot be index keys
    """
    if not isinstance(descriptor, dict):
        return None
    extended = extended_type_of(descriptor)
    if extended is ExtendedType.BINARY:
        return AttributeType.BINARY
    if extended is ExtendedType.TIMESTAMP:
        return AttributeType.NUMBER
    json_type = descriptor.get('type')
    if json_type == 'string':
        return AttributeType.STRING
    if json_type in ('number', 'integer'):
        return AttributeType.NUMBER
    return None


# =============================================================================
# Built-in types
# =============================================================================

DocId = FieldType({'type': 'string', 'minLength': 1, 'maxLength': 1024})
Timestamp = FieldType({EXTENDED_TYPE_KEY: ExtendedType.TIMESTAMP})
Binary = FieldType({EXTENDED_TYPE_KEY: ExtendedType.BINARY})

# Built-in fields, identified by role to find special field names
DocIdField = FieldType(DocId, role=FieldRole.ID)
TypeField = FieldType({'type': 'string', 'minLength': 1, 'maxLength': 1024}, role=FieldRole.TYPE)
VersionField = FieldType({'type': 'integer', 'minimum': 0}, role=FieldRole.VERSION)
CreatedAtField = FieldType(Timestamp, role=FieldRole.CREATED_AT)
UpdatedAtField = FieldType(Timestamp, role=FieldRole.UPDATED_AT)

from .fields import (
    AttributeType,
    Binary,
    CreatedAtField,
    DocId,
    DocIdField,
    ExtendedType,
    FieldRole,
    FieldType,
    Timestamp,
    TypeField,
    UpdatedAtField,
    VersionField,
)
from .indexes import IndexSpec, ProjectionType, index_descriptions_equal, parse_index_specification, type_index
from .schema import Schema

__all__ = [
    "AttributeType",
    "Binary",
    "CreatedAtField",
    "DocId",
    "DocIdField",
    "ExtendedType",
    "FieldRole",
    "FieldType",
    "IndexSpec",
    "ProjectionType",
    "Schema",
    "Timestamp",
    "TypeField",
    "UpdatedAtField",
    "VersionField",
    "index_descriptions_equal",
    "parse_index_specification",
    "type_index",
]

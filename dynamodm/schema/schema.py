"""
Schema definition.

A Schema is a named document shape plus everything a model derived from it
needs: the special field names, the compiled validator passes, secondary
index declarations, and the extension tables (methods, statics, virtuals,
converters) that are read when a model is created.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import ConfigurationError
from ..utils import default_document_id
from .fields import (
    DocIdField,
    FieldRole,
    TypeField,
    VersionField,
    field_role,
)
from .indexes import IndexSpec, parse_index_specification
from .validation import CompiledSchema, ValidationIssue, validate_value


DEFAULT_ID_FIELD_NAME = 'id'
DEFAULT_TYPE_FIELD_NAME = 'type'
DEFAULT_VERSION_FIELD_NAME = 'v'

_ROLE_LABELS = {
    FieldRole.ID: 'id',
    FieldRole.TYPE: 'type',
    FieldRole.VERSION: 'version',
    FieldRole.CREATED_AT: 'createdAt',
    FieldRole.UPDATED_AT: 'updatedAt',
}


def _find_role_fields(properties: Dict[str, Any]) -> Dict[FieldRole, str]:
    found: Dict[FieldRole, str] = {}
    for name, descriptor in properties.items():
        role = field_role(descriptor)
        if role is FieldRole.NONE:
            continue
        if role in found:
            raise ConfigurationError(f"Duplicate {_ROLE_LABELS[role]} field.")
        found[role] = name
    return found


class Schema:
    """
    A named document shape.

    Args:
        name: Type name of the documents (stored in the type field)
        source: JSON-Schema object definition: ``{'properties': ..., 'required': [...],
            'additionalProperties': ...}``. May be omitted for schemaless documents.
        index: Secondary index declarations (see ``dynamodm.schema.indexes``)
        generate_id: Optional ``generate_id(params, options) -> str`` used for new documents
        versioning: Enable optimistic concurrency through a version field (default True)
        logger: Logger for schema warnings

    Raises:
        ConfigurationError: If the name, source or index declarations are invalid

    Example:
        comment = Schema('comment', {
            'properties': {
                'text': {'type': 'string'},
                'user': {'type': 'string'},
                'created': CreatedAtField,
            },
            'required': ['text']
        }, index={'byUser': {'hashKey': 'user', 'sortKey': 'created'}})
    """

    def __init__(
        self,
        name: str,
        source: Optional[Dict[str, Any]] = None,
        *,
        index: Optional[Dict[str, Any]] = None,
        generate_id: Optional[Callable[[Dict[str, Any], Dict[str, Any]], str]] = None,
        versioning: bool = True,
        logger: Optional[logging.Logger] = None
    ):
        if source is not None and not isinstance(source, dict):
            raise ConfigurationError('Invalid schema: must be a dict or None.')
        source = source or {}

        if not (name and isinstance(name, str)):
            raise ConfigurationError('Invalid name: must be a non-empty string.')
        self.name = name
        self.logger = logger if logger is not None else logging.getLogger(__name__)

        source_properties = source.get('properties') or {}
        if not isinstance(source_properties, dict):
            raise ConfigurationError('Invalid schema: properties must be a dict.')

        # extract the names of fields with special meanings
        role_fields = _find_role_fields(source_properties)
        self.id_field_name: str = role_fields.get(FieldRole.ID, DEFAULT_ID_FIELD_NAME)
        self.type_field_name: str = role_fields.get(FieldRole.TYPE, DEFAULT_TYPE_FIELD_NAME)
        self.created_at_field_name: str = role_fields.get(FieldRole.CREATED_AT, '')
        self.updated_at_field_name: str = role_fields.get(FieldRole.UPDATED_AT, '')

        declared_version_field = role_fields.get(FieldRole.VERSION)
        if versioning is False:
            self.version_field_name = ''
            if declared_version_field:
                self.logger.warning(
                    f"versioning is disabled, so the {self.name} Schema VersionField .{declared_version_field} is ignored"
                )
        else:
            self.version_field_name = declared_version_field or DEFAULT_VERSION_FIELD_NAME

        if source.get('type') is not None and source.get('type') != 'object':
            raise ConfigurationError('Schema type must be object (or can be omitted).')

        # ensure the id, type and version fields are present in the schema
        properties = dict(source_properties)
        properties[self.id_field_name] = DocIdField
        properties[self.type_field_name] = TypeField
        if self.version_field_name:
            properties[self.version_field_name] = VersionField

        declared_required = source.get('required') or []
        if not isinstance(declared_required, list):
            raise ConfigurationError('Invalid schema: required must be a list of property names.')
        required = list(dict.fromkeys([self.id_field_name, self.type_field_name, *declared_required]))

        normalized: Dict[str, Any] = {
            'type': 'object',
            'properties': properties,
            'required': required,
        }
        if 'additionalProperties' in source:
            normalized['additionalProperties'] = source['additionalProperties']
        self.source = normalized

        self._compiled = CompiledSchema(normalized)
        self.indices: List[IndexSpec] = parse_index_specification(index, normalized)

        if generate_id is not None and not callable(generate_id):
            raise ConfigurationError('Invalid generate_id: must be callable.')
        self._generate_id = generate_id

        # extension points, read when a model is created
        self.methods: Dict[str, Any] = {}
        self.statics: Dict[str, Any] = {}
        self.virtuals: Dict[str, Any] = {}
        self.converters: List[Callable] = []

    def __repr__(self) -> str:
        return f"Schema(name={self.name!r})"

    @property
    def properties(self) -> Dict[str, Any]:
        return self.source['properties']

    def property_schema(self, name: str) -> Optional[Dict[str, Any]]:
        """Descriptor of a declared property, or None."""
        return self.source['properties'].get(name)

    def new_id(self, params: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> str:
        """Generate the id of a new document."""
        if self._generate_id is not None:
            return self._generate_id(params, options or {})
        return default_document_id(self.name)

    # -------------------------------------------------------------------------
    # Validator passes
    # -------------------------------------------------------------------------

    def validate(self, data: Dict[str, Any]) -> List[ValidationIssue]:
        """Check a document, applying defaults in place."""
        return self._compiled.validate(data)

    def marshal(self, data: Dict[str, Any]) -> List[ValidationIssue]:
        """Validate a document copy and convert it in place for storage."""
        return self._compiled.marshal(data)

    def unmarshal(self, data: Dict[str, Any], partial: bool = False) -> List[ValidationIssue]:
        """Convert a stored item in place and validate it."""
        return self._compiled.unmarshal(data, partial=partial)

    def validate_value(self, field_name: str, value: Any) -> List[ValidationIssue]:
        """Check one value against the declared type of field_name (defaults are not applied)."""
        return validate_value(self.property_schema(field_name), value)

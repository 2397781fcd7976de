"""
Secondary index declarations.

Schemas declare global secondary indexes with a small grammar:

    index={
        'user': True,                                   # hash-only index named after .user
        'byUser': {'hashKey': 'user', 'sortKey': 'created', 'project': 'all'},
        'byTag': {'hashKey': 'tag', 'project': ['text', 'score']},
    }

``project`` is ``'keys'`` (the default, KEYS_ONLY), ``'all'`` (ALL) or a list
of at most 20 attribute names (INCLUDE). Every key attribute must be a
declared property with an indexable type (see ``attribute_type_for``).

Parsed declarations are ``IndexSpec`` models which render to the
``GlobalSecondaryIndexes`` description used by CreateTable/UpdateTable.
"""

import json
import re
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigurationError
from .fields import AttributeType, attribute_type_for

VALID_INDEX_NAME = re.compile(r'^[a-zA-Z0-9_.-]{3,255}$')
TYPE_INDEX_NAME = 'type'
MAX_PROJECTED_ATTRIBUTES = 20


class ProjectionType(str, Enum):
    KEYS_ONLY = "KEYS_ONLY"
    ALL = "ALL"
    INCLUDE = "INCLUDE"


class IndexDeclaration(BaseModel):
    """Explicit index declaration as written in a schema."""

    hashKey: str = Field(..., min_length=1)
    sortKey: Optional[str] = None
    project: Union[Literal['all', 'keys'], List[str]] = 'keys'

    model_config = ConfigDict(extra='forbid', strict=True)

    @field_validator('project')
    @classmethod
    def validate_project(cls, v):
        """Validate an explicit projected-attribute list."""
        if isinstance(v, list):
            if not v:
                raise ValueError("the projected attribute list must not be empty")
            if len(set(v)) != len(v):
                raise ValueError("projected attribute names must be unique")
            if len(v) > MAX_PROJECTED_ATTRIBUTES:
                raise ValueError(f"at most {MAX_PROJECTED_ATTRIBUTES} attributes can be projected")
        return v


class IndexSpec(BaseModel):
    """A resolved global secondary index."""

    name: str
    hash_key: str
    sort_key: Optional[str] = None
    projection_type: ProjectionType = ProjectionType.KEYS_ONLY
    non_key_attributes: List[str] = Field(default_factory=list)
    required_attributes: List[Dict[str, str]] = Field(
        default_factory=list,
        description="AttributeDefinitions for the key attributes of this index"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def key_schema(self) -> List[Dict[str, str]]:
        key_schema = [{'AttributeName': self.hash_key, 'KeyType': 'HASH'}]
        if self.sort_key:
            key_schema.append({'AttributeName': self.sort_key, 'KeyType': 'RANGE'})
        return key_schema

    @property
    def projection(self) -> Dict[str, Any]:
        projection: Dict[str, Any] = {'ProjectionType': self.projection_type.value}
        if self.projection_type is ProjectionType.INCLUDE:
            projection['NonKeyAttributes'] = list(self.non_key_attributes)
        return projection

    @property
    def projects_all_attributes(self) -> bool:
        return self.projection_type is ProjectionType.ALL

    def to_description(self) -> Dict[str, Any]:
        """The GlobalSecondaryIndexes entry for this index."""
        return {
            'IndexName': self.name,
            'KeySchema': self.key_schema,
            'Projection': self.projection,
        }

    def matches(self, description: Optional[Dict[str, Any]]) -> bool:
        """Whether a native index description (e.g. from DescribeTable) is equivalent."""
        return index_descriptions_equal(self.to_description(), description)


def index_descriptions_equal(a: Optional[Dict[str, Any]], b: Optional[Dict[str, Any]]) -> bool:
    """Compare two native index descriptions by name, key schema and projection."""
    if not a or not b:
        return False
    if a.get('IndexName') != b.get('IndexName'):
        return False
    key_schema_a = [(k['AttributeName'], k['KeyType']) for k in a.get('KeySchema', [])]
    key_schema_b = [(k['AttributeName'], k['KeyType']) for k in b.get('KeySchema', [])]
    if key_schema_a != key_schema_b:
        return False
    projection_a = a.get('Projection', {})
    projection_b = b.get('Projection', {})
    if projection_a.get('ProjectionType') != projection_b.get('ProjectionType'):
        return False
    return sorted(projection_a.get('NonKeyAttributes', [])) == sorted(projection_b.get('NonKeyAttributes', []))


def _attribute_type(index_name: str, source: Dict[str, Any], property_name: str) -> AttributeType:
    properties = source.get('properties') or {}
    if property_name not in properties:
        raise ConfigurationError(
            f'The schema must define the type of property .{property_name} used by index "{index_name}".'
        )
    attribute_type = attribute_type_for(properties[property_name])
    if attribute_type is None:
        raise ConfigurationError(
            f'The schema type of property .{property_name}, "{_describe(properties[property_name])}" '
            f'used by index "{index_name}" is not indexable.'
        )
    return attribute_type


def _describe(descriptor: Any) -> str:
    try:
        return json.dumps(descriptor)
    except (TypeError, ValueError):
        return repr(descriptor)


def _is_hash_only_shorthand(spec: Any) -> bool:
    return spec is True or (type(spec) is int and spec == 1)


def _projection_from_declaration(project: Union[str, List[str]]):
    if project == 'all':
        return ProjectionType.ALL, []
    if project == 'keys':
        return ProjectionType.KEYS_ONLY, []
    return ProjectionType.INCLUDE, list(project)


def parse_index_specification(index: Optional[Dict[str, Any]], source: Dict[str, Any]) -> List[IndexSpec]:
    """
    Parse a schema's index declarations.

    Args:
        index: Mapping of index name to declaration (True/1 or a dict)
        source: The normalized schema source (used to resolve attribute types)

    Returns:
        List of IndexSpec in declaration order

    Raises:
        ConfigurationError: If any declaration is invalid
    """
    if not index:
        return []
    if not isinstance(index, dict):
        raise ConfigurationError('Invalid index option: must be a dict of index name to index specification.')

    indices = []
    for index_name, index_spec in index.items():
        if not isinstance(index_name, str) or not VALID_INDEX_NAME.match(index_name):
            raise ConfigurationError(
                f'Invalid index name "{index_name}": Must be between 3 and 255 characters long, '
                "and may contain only the characters a-z, A-Z, 0-9, '_', '-', and '.'."
            )
        if index_name == TYPE_INDEX_NAME:
            raise ConfigurationError('Invalid index name "type": this name is reserved for the built-in type index.')

        if _is_hash_only_shorthand(index_spec):
            attribute_type = _attribute_type(index_name, source, index_name)
            indices.append(IndexSpec(
                name=index_name,
                hash_key=index_name,
                required_attributes=[{'AttributeName': index_name, 'AttributeType': attribute_type.value}]
            ))
            continue

        if not isinstance(index_spec, dict):
            raise ConfigurationError(
                f'Invalid index specification {index_spec!r}: must be 1, True, '
                'or {"hashKey": "", "sortKey"?: "", "project"?: "all" | "keys" | [...]}.'
            )
        try:
            declaration = IndexDeclaration.model_validate(index_spec)
        except PydanticValidationError as e:
            raise ConfigurationError(f'Invalid index specification for "{index_name}": {e}', e) from e

        required_attributes = [{
            'AttributeName': declaration.hashKey,
            'AttributeType': _attribute_type(index_name, source, declaration.hashKey).value
        }]
        sort_key = declaration.sortKey or None
        if sort_key:
            required_attributes.append({
                'AttributeName': sort_key,
                'AttributeType': _attribute_type(index_name, source, sort_key).value
            })
        projection_type, non_key_attributes = _projection_from_declaration(declaration.project)
        indices.append(IndexSpec(
            name=index_name,
            hash_key=declaration.hashKey,
            sort_key=sort_key,
            projection_type=projection_type,
            non_key_attributes=non_key_attributes,
            required_attributes=required_attributes
        ))
    return indices


def type_index(type_field_name: str, id_field_name: str) -> IndexSpec:
    """The built-in index listing documents by type, in id order."""
    return IndexSpec(
        name=TYPE_INDEX_NAME,
        hash_key=type_field_name,
        sort_key=id_field_name,
        required_attributes=[
            {'AttributeName': id_field_name, 'AttributeType': AttributeType.STRING.value},
            {'AttributeName': type_field_name, 'AttributeType': AttributeType.STRING.value},
        ]
    )

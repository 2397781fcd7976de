"""
Table-wide index coordination.

All schemas registered on one table share its global secondary indexes.
Before a table is used:

- the required indexes are collected: the built-in type index (only when
  more than one schema shares the table) followed by every schema's
  declared indexes
- the indexes are checked for compatibility: every key attribute must have a
  single attribute type table-wide, and indexes declared under the same name
  must be identical
- the required indexes are compared with the indexes of the existing table
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..exceptions import ConsistencyError
from ..schema import Schema
from ..schema.fields import AttributeType
from ..schema.indexes import IndexSpec, type_index


def required_indexes(schemas: List[Schema], id_field_name: str, type_field_name: str) -> List[IndexSpec]:
    """Indexes the registered schemas need, in registration order."""
    indexes: List[IndexSpec] = []
    # a table with a single schema does not need the type index
    if len(schemas) > 1:
        indexes.append(type_index(type_field_name, id_field_name))
    for schema in schemas:
        indexes.extend(schema.indices)
    return indexes


def check_index_compatibility(
    indexes: List[IndexSpec],
    schemas: Iterable[Schema],
    id_field_name: str
) -> List[Dict[str, str]]:
    """
    Check that the indexes can coexist in one table.

    Args:
        indexes: Required indexes
        schemas: Registered schemas (used to name the offenders in errors)
        id_field_name: Name of the table hash key

    Returns:
        The deduplicated AttributeDefinitions of the table key and all index keys

    Raises:
        ConsistencyError: If an attribute has conflicting types, or one index
            name has conflicting definitions
    """
    schemas = list(schemas)
    attribute_types: Dict[str, str] = {}
    attribute_definitions: List[Dict[str, str]] = []
    indexes_by_name: Dict[str, IndexSpec] = {}

    # the table hash key is not an index key, but shares the attribute namespace
    table_key = [{'AttributeName': id_field_name, 'AttributeType': AttributeType.STRING.value}]
    entries: List[Tuple[Optional[IndexSpec], List[Dict[str, str]]]] = [(None, table_key)]
    entries.extend((index, index.required_attributes) for index in indexes)

    for index, attributes in entries:
        for attribute in attributes:
            name, attribute_type = attribute['AttributeName'], attribute['AttributeType']
            if name not in attribute_types:
                attribute_types[name] = attribute_type
                attribute_definitions.append({'AttributeName': name, 'AttributeType': attribute_type})
            elif attribute_types[name] != attribute_type:
                raise _incompatible_attribute_error(name, schemas, id_field_name)

        if index is None:
            continue
        existing = indexes_by_name.get(index.name)
        if existing is None:
            indexes_by_name[index.name] = index
        elif not existing.matches(index.to_description()):
            offending = [
                schema.name for schema in schemas
                if any(declared.name == index.name for declared in schema.indices)
            ]
            raise ConsistencyError(
                f'Schema(s) "{", ".join(offending)}" define incompatible versions of index "{index.name}".'
            )
    return attribute_definitions


def _incompatible_attribute_error(attribute_name: str, schemas: List[Schema], id_field_name: str) -> ConsistencyError:
    offending_schemas = []
    offending_indexes = []
    offending_types = []
    if attribute_name == id_field_name:
        offending_schemas.append('(table key)')
        offending_indexes.append('(table key)')
        offending_types.append(AttributeType.STRING.value)
    for schema in schemas:
        for index in schema.indices:
            attribute = next((a for a in index.required_attributes if a['AttributeName'] == attribute_name), None)
            if attribute is not None:
                offending_schemas.append(schema.name)
                offending_indexes.append(index.name)
                offending_types.append(attribute['AttributeType'])
                break
    return ConsistencyError(
        f'Schema(s) "{", ".join(offending_schemas)}" define incompatible types ({",".join(offending_types)}) '
        f'for ".{attribute_name}" in index(es) "{", ".join(offending_indexes)}".'
    )


def diff_indexes(
    required: List[IndexSpec],
    existing: Optional[List[Dict[str, Any]]]
) -> Tuple[List[IndexSpec], List[IndexSpec]]:
    """
    Compare required indexes with the GlobalSecondaryIndexes of a table description.

    Returns:
        Tuple of (missing, differing) indexes
    """
    existing_by_name = {description['IndexName']: description for description in (existing or [])}
    missing: List[IndexSpec] = []
    differing: List[IndexSpec] = []
    seen = set()
    for index in required:
        if index.name in seen:
            continue
        seen.add(index.name)
        match = existing_by_name.get(index.name)
        if match is None:
            missing.append(index)
        elif not index.matches(match):
            differing.append(index)
    return missing, differing

"""
Schema validation passes.

Document shapes are JSON Schema (draft 7) validated by ``jsonschema``,
extended with:

- an ``extendedType`` keyword checking ``datetime`` (Timestamp) and
  ``bytes`` (Binary) values
- default application: a missing property whose descriptor declares a
  ``default`` is filled in before the ``properties`` keyword is checked

On top of the generic validator, three passes walk the same descriptor tree
and differ only in how they treat extended types:

    validate   check shape, apply defaults, no conversion
    marshal    validate, then convert to the stored representation
               (datetime -> epoch ms int, float -> Decimal)
    unmarshal  convert from the stored representation (Decimal -> int/float,
               boto3 Binary -> bytes, epoch ms -> datetime), then validate

All passes treat ``None`` as "unset": None values are removed from mappings
before anything else happens. Every pass mutates the data it is given and
returns a list of ``{'path': ..., 'message': ...}`` errors (empty if valid).
"""

import copy
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from boto3.dynamodb.types import Binary as StoredBinary
from jsonschema import Draft7Validator, validators
from jsonschema.exceptions import ValidationError as SchemaValidationError

from ..utils import (
    datetime_to_epoch_ms,
    epoch_ms_to_datetime,
    from_storage_number,
    to_storage_number,
)
from .fields import EXTENDED_TYPE_KEY, ExtendedType, extended_type_of


ValidationIssue = Dict[str, str]


# =============================================================================
# jsonschema extensions
# =============================================================================

def _extended_type(validator, extended_type, instance, schema):
    """``extendedType`` keyword: checks the in-memory type of extended values."""
    try:
        kind = ExtendedType(extended_type)
    except ValueError:
        yield SchemaValidationError(f"{extended_type!r} is an unknown extended type")
        return
    if kind is ExtendedType.TIMESTAMP:
        if not isinstance(instance, datetime):
            yield SchemaValidationError(f"{instance!r} must be a datetime")
        elif instance.tzinfo is None or instance.utcoffset() is None:
            # stored values load as aware UTC datetimes
            yield SchemaValidationError(f"{instance!r} must be a timezone-aware datetime")
    elif kind is ExtendedType.BINARY and not isinstance(instance, (bytes, bytearray)):
        yield SchemaValidationError(f"{instance!r} must be bytes")


_validate_properties = Draft7Validator.VALIDATORS['properties']


def _properties_with_defaults(validator, properties, instance, schema):
    """``properties`` keyword that fills in declared defaults first."""
    if validator.is_type(instance, 'object'):
        for name, subschema in properties.items():
            if isinstance(subschema, dict) and 'default' in subschema and name not in instance:
                instance[name] = copy.deepcopy(subschema['default'])
    yield from _validate_properties(validator, properties, instance, schema)


DocumentValidator = validators.extend(
    Draft7Validator,
    {EXTENDED_TYPE_KEY: _extended_type, 'properties': _properties_with_defaults},
)

ValueValidator = validators.extend(Draft7Validator, {EXTENDED_TYPE_KEY: _extended_type})


def _error_path(error: SchemaValidationError) -> str:
    return ''.join(f"/{part}" for part in error.absolute_path)


def _collect_errors(validator, data: Any) -> List[ValidationIssue]:
    return [
        {'path': _error_path(error), 'message': error.message}
        for error in validator.iter_errors(data)
    ]


def describe_first_error(errors: List[ValidationIssue]) -> str:
    """Render the first error as ``"<path> <message>"``."""
    if not errors:
        return ''
    first = errors[0]
    return f"{first['path']} {first['message']}".strip()


# =============================================================================
# Data walkers
# =============================================================================

class _ConversionError(Exception):
    pass


def strip_unset(value: Any) -> Any:
    """Remove None values from mappings, recursively, in place."""
    if isinstance(value, dict):
        for key in [k for k, v in value.items() if v is None]:
            del value[key]
        for item in value.values():
            strip_unset(item)
    elif isinstance(value, list):
        for item in value:
            strip_unset(item)
    return value


def _convert_extended(
    descriptor: Any,
    value: Any,
    convert: Callable[[ExtendedType, Any, str], Any],
    errors: List[ValidationIssue],
    path: str = ''
) -> Any:
    """Apply convert to every value whose descriptor declares an extended type."""
    if not isinstance(descriptor, dict):
        return value

    kind = extended_type_of(descriptor)
    if kind is not None:
        try:
            return convert(kind, value, path)
        except _ConversionError as e:
            errors.append({'path': path, 'message': str(e)})
            return value

    if isinstance(value, dict):
        properties = descriptor.get('properties')
        if isinstance(properties, dict):
            for name, subschema in properties.items():
                if name in value:
                    value[name] = _convert_extended(subschema, value[name], convert, errors, f"{path}/{name}")
        additional = descriptor.get('additionalProperties')
        if isinstance(additional, dict):
            declared = properties if isinstance(properties, dict) else {}
            for name in value:
                if name not in declared:
                    value[name] = _convert_extended(additional, value[name], convert, errors, f"{path}/{name}")
    elif isinstance(value, list):
        items = descriptor.get('items')
        if isinstance(items, dict):
            for i, item in enumerate(value):
                value[i] = _convert_extended(items, item, convert, errors, f"{path}/{i}")
        elif isinstance(items, list):
            for i, (subschema, item) in enumerate(zip(items, value)):
                value[i] = _convert_extended(subschema, item, convert, errors, f"{path}/{i}")
    return value


def _marshal_extended(kind: ExtendedType, value: Any, path: str) -> Any:
    if kind is ExtendedType.TIMESTAMP:
        return datetime_to_epoch_ms(value)
    # binaries are stored as they are
    return bytes(value)


def _unmarshal_extended(kind: ExtendedType, value: Any, path: str) -> Any:
    if kind is ExtendedType.TIMESTAMP:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return epoch_ms_to_datetime(value)
        raise _ConversionError(
            f"Expected marshalled type of Timestamp property {path} to be a number (got {type(value).__name__})"
        )
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise _ConversionError(
        f"Expected marshalled type of Binary property {path} to be bytes (got {type(value).__name__})"
    )


def marshal_numbers(value: Any) -> Any:
    """Convert floats to Decimal, recursively (boto3 rejects float)."""
    if isinstance(value, float):
        return to_storage_number(value)
    if isinstance(value, dict):
        for key, item in value.items():
            value[key] = marshal_numbers(item)
    elif isinstance(value, list):
        for i, item in enumerate(value):
            value[i] = marshal_numbers(item)
    return value


def unmarshal_native(value: Any) -> Any:
    """Convert boto3's Decimal and Binary values to Python numbers and bytes, recursively."""
    if isinstance(value, Decimal):
        return from_storage_number(value)
    if isinstance(value, StoredBinary):
        return bytes(value.value)
    if isinstance(value, dict):
        for key, item in value.items():
            value[key] = unmarshal_native(item)
    elif isinstance(value, list):
        for i, item in enumerate(value):
            value[i] = unmarshal_native(item)
    elif isinstance(value, (set, frozenset)):
        return type(value)(unmarshal_native(item) for item in value)
    return value


# =============================================================================
# Compiled schema
# =============================================================================

class CompiledSchema:
    """The validate / marshal / unmarshal passes for one normalized schema source."""

    def __init__(self, source: Dict[str, Any]):
        self.source = source
        self._validator = DocumentValidator(source)
        relaxed = {k: v for k, v in source.items() if k != 'required'}
        self._relaxed_validator = DocumentValidator(relaxed)

    def validate(self, data: Dict[str, Any]) -> List[ValidationIssue]:
        """Check data, applying defaults in place."""
        strip_unset(data)
        return _collect_errors(self._validator, data)

    def marshal(self, data: Dict[str, Any]) -> List[ValidationIssue]:
        """Validate data, then convert it in place to the stored representation."""
        strip_unset(data)
        errors = _collect_errors(self._validator, data)
        if errors:
            return errors
        _convert_extended(self.source, data, _marshal_extended, errors)
        marshal_numbers(data)
        return errors

    def unmarshal(self, data: Dict[str, Any], partial: bool = False) -> List[ValidationIssue]:
        """Convert stored data in place, then validate it.

        Args:
            data: Item as returned by boto3
            partial: Skip the required-properties check (index-projected items)
        """
        strip_unset(data)
        unmarshal_native(data)
        errors: List[ValidationIssue] = []
        _convert_extended(self.source, data, _unmarshal_extended, errors)
        if errors:
            return errors
        validator = self._relaxed_validator if partial else self._validator
        return _collect_errors(validator, data)


def validate_value(descriptor: Optional[Dict[str, Any]], value: Any) -> List[ValidationIssue]:
    """Check one value against a property descriptor, without applying defaults."""
    if descriptor is None:
        return []
    return _collect_errors(ValueValidator(descriptor), value)


def marshal_value(descriptor: Optional[Dict[str, Any]], value: Any) -> Any:
    """Convert one (valid) value to its stored representation."""
    if extended_type_of(descriptor) is ExtendedType.TIMESTAMP and isinstance(value, datetime):
        return datetime_to_epoch_ms(value)
    if isinstance(value, (dict, list)):
        value = copy.deepcopy(value)
    return marshal_numbers(value)

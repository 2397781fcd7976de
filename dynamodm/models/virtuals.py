"""
Virtual properties.

A schema's ``virtuals`` table maps names to either:

- a string: an alias for a declared property, read and written through
- a descriptor dict with keys from ``configurable``, ``enumerable``,
  ``value``, ``writable``, ``get`` and ``set``:

    {'get': lambda doc: ..., 'set': lambda doc, value: ...}   accessor
    {'value': 3, 'writable': True}                             data

A getter without a setter makes the virtual read-only: assigning to it
raises AttributeError. Virtuals are never stored.
"""

from typing import Any, Callable, Dict, Optional

from ..exceptions import ConfigurationError

DESCRIPTOR_KEYS = ('configurable', 'enumerable', 'value', 'writable', 'get', 'set')

_UNSET = object()


class VirtualProperty:
    """One virtual property of a model."""

    def __init__(
        self,
        schema_name: str,
        name: str,
        *,
        alias: Optional[str] = None,
        getter: Optional[Callable[[Any], Any]] = None,
        setter: Optional[Callable[[Any, Any], None]] = None,
        value: Any = None,
        writable: bool = False,
        enumerable: bool = False,
        configurable: bool = False
    ):
        self.schema_name = schema_name
        self.name = name
        self.alias = alias
        self.getter = getter
        self.setter = setter
        self.value = value
        self.writable = writable
        self.enumerable = enumerable
        self.configurable = configurable

    def __repr__(self) -> str:
        if self.alias is not None:
            return f"VirtualProperty({self.name!r} -> {self.alias!r})"
        return f"VirtualProperty({self.name!r})"

    @property
    def is_accessor(self) -> bool:
        return self.getter is not None or self.setter is not None

    def get(self, doc) -> Any:
        if self.alias is not None:
            return getattr(doc, self.alias)
        if self.is_accessor:
            return self.getter(doc) if self.getter is not None else None
        instance_value = doc._virtual_values.get(self.name, _UNSET)
        return self.value if instance_value is _UNSET else instance_value

    def set(self, doc, value: Any) -> None:
        if self.alias is not None:
            setattr(doc, self.alias, value)
        elif self.setter is not None:
            self.setter(doc, value)
        elif self.writable:
            doc._virtual_values[self.name] = value
        else:
            raise AttributeError(f'Virtual property "{self.schema_name}.{self.name}" cannot be assigned.')


def _parse_descriptor(schema, name: str, spec: Dict[str, Any]) -> VirtualProperty:
    for key in spec:
        if key not in DESCRIPTOR_KEYS:
            raise ConfigurationError(
                f'Virtual property "{name}" invalid descriptor key "{key}" is not one of '
                "'configurable', 'enumerable', 'value', 'writable', 'get' or 'set'."
            )
    getter = spec.get('get')
    setter = spec.get('set')
    if (getter is not None or setter is not None) and ('value' in spec or 'writable' in spec):
        raise ConfigurationError(
            f'Virtual property "{name}" cannot combine get/set with value/writable.'
        )
    for key, function in (('get', getter), ('set', setter)):
        if function is not None and not callable(function):
            raise ConfigurationError(f'Virtual property "{name}" {key} must be callable.')

    return VirtualProperty(
        schema.name,
        name,
        getter=getter,
        setter=setter,
        value=spec.get('value'),
        writable=bool(spec.get('writable', False)),
        enumerable=bool(spec.get('enumerable', False)),
        configurable=bool(spec.get('configurable', False))
    )


def build_virtuals(schema) -> Dict[str, VirtualProperty]:
    """
    Build the virtual properties of a schema.

    Raises:
        ConfigurationError: If a virtual is malformed, aliases an unknown
            property, or shadows a declared property
    """
    virtuals: Dict[str, VirtualProperty] = {}
    for name, spec in schema.virtuals.items():
        if name in schema.properties:
            raise ConfigurationError(f'Virtual property "{name}" conflicts with a schema property of the same name.')
        if isinstance(spec, str):
            if spec not in schema.properties:
                raise ConfigurationError(f'Virtual property "{name}" is an alias for an unknown property "{spec}".')
            virtuals[name] = VirtualProperty(schema.name, name, alias=spec)
        elif isinstance(spec, dict):
            virtuals[name] = _parse_descriptor(schema, name, spec)
        else:
            raise ConfigurationError(
                f'Virtual property "{name}" must be a string alias, or a data descriptor or accessor descriptor.'
            )
    return virtuals

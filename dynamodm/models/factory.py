"""
Model factory.

``create_model`` builds the Document subclass of one schema on one table.
The subclass holds the schema, the table and a model logger; the schema's
methods, statics and virtuals are dispatched from its tables rather than
set as class attributes.
"""

import logging
from typing import Any, Dict

from ..exceptions import ConfigurationError
from .document import INTERNAL_ATTRIBUTES, Document, DocumentMeta
from .virtuals import build_virtuals

# names resolved by the runtime before schema methods, statics and virtuals
RESERVED_NAMES = frozenset(
    {name for name in dir(Document) if not name.startswith('__')}
    | set(INTERNAL_ATTRIBUTES)
    | {'table', 'type', 'mro'}
)


def _check_names(names, kind: str) -> None:
    for name in names:
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f'Invalid {kind} name {name!r}: must be a non-empty string.')
        if name.startswith('__') or name in RESERVED_NAMES:
            raise ConfigurationError(f"The name '{name}' is reserved and cannot be used for a {kind}.")


def create_model(table, schema, logger: Any) -> type:
    """
    Create the model class of schema on table.

    Args:
        table: Table the documents are stored in
        schema: Schema of the documents
        logger: Model logger (usually a LoggerAdapter carrying table and model)

    Returns:
        A Document subclass named ``Model_<schema name>``

    Raises:
        ConfigurationError: If a converter is not callable, a method, static or
            virtual uses a reserved name, or a virtual is malformed
    """
    for i, converter in enumerate(schema.converters):
        if not callable(converter):
            raise ConfigurationError(
                f"Converters must be functions or async functions: converters[{i}] is {type(converter).__name__}."
            )
    _check_names(schema.methods, 'method')
    _check_names(schema.statics, 'static')
    _check_names(schema.virtuals, 'virtual')
    virtuals = build_virtuals(schema)

    namespace: Dict[str, Any] = {
        '__module__': Document.__module__,
        '__doc__': f"Model of {schema.name} documents.",
        '_schema': schema,
        '_table': table,
        '_logger': logger if logger is not None else logging.getLogger(Document.__module__),
        '_virtual_properties': virtuals,
        '_methods': dict(schema.methods),
        '_statics': dict(schema.statics),
    }
    return DocumentMeta(f"Model_{schema.name}", (Document,), namespace)

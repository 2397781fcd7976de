"""
DynamoDM facade.

A DynamoDM instance carries the configuration, logger and default options
shared by the schemas and tables it creates:

    ddm = DynamoDM(config=DynamoDMConfig.from_env(), versioning=True)
    comment = ddm.schema('comment', {'properties': {'text': {'type': 'string'}}})
    table = ddm.table('my-app-table')
    Comment = table.model(comment)
"""

import logging
from typing import Any, Dict, Optional

from .config import DynamoDMConfig
from .exceptions import ConfigurationError
from .schema import (
    Binary,
    CreatedAtField,
    DocId,
    DocIdField,
    Schema,
    Timestamp,
    TypeField,
    UpdatedAtField,
    VersionField,
)
from .table import Table

SCHEMA_OPTIONS = frozenset({'index', 'generate_id', 'versioning', 'logger'})
TABLE_OPTIONS = frozenset({'config', 'gateway', 'retry', 'logger'})


class DynamoDM:
    """
    Entry point creating schemas and tables with shared defaults.

    Args:
        config: Connection and coordination settings (defaults from environment)
        logger: Parent logger for schemas and tables (default: the ``dynamodm`` logger)
        **default_options: Default options for ``schema()`` (index, generate_id,
            versioning) and ``table()`` (gateway, retry)

    Raises:
        ConfigurationError: If a default option is not a schema or table option
    """

    # built-in types and fields
    DocId = DocId
    Timestamp = Timestamp
    Binary = Binary
    DocIdField = DocIdField
    TypeField = TypeField
    VersionField = VersionField
    CreatedAtField = CreatedAtField
    UpdatedAtField = UpdatedAtField

    def __init__(self, config: Optional[DynamoDMConfig] = None, logger: Optional[logging.Logger] = None, **default_options):
        unknown = set(default_options) - SCHEMA_OPTIONS - TABLE_OPTIONS
        if unknown:
            raise ConfigurationError(f"Unknown DynamoDM options: {', '.join(sorted(unknown))}.")
        self.config = config or DynamoDMConfig()
        self.config.configure_logging()
        self.logger = logger if logger is not None else logging.getLogger('dynamodm')
        self.default_options = default_options

    def _options_for(self, allowed: frozenset, options: Dict[str, Any]) -> Dict[str, Any]:
        merged = {key: value for key, value in self.default_options.items() if key in allowed}
        merged.setdefault('logger', self.logger)
        merged.update(options)
        return merged

    def schema(self, name: str, source: Optional[Dict[str, Any]] = None, **options) -> Schema:
        """Create a Schema, merging in the default schema options."""
        return Schema(name, source, **self._options_for(SCHEMA_OPTIONS, options))

    def table(self, name: str, **options) -> Table:
        """Create a Table, merging in the default config and table options."""
        merged = self._options_for(TABLE_OPTIONS, options)
        merged.setdefault('config', self.config)
        return Table(name, **merged)

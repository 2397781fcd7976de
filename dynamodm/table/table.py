"""
Table coordinator.

A Table binds a DynamoDB table to the schemas stored in it. Schemas are
registered with ``table.model(schema)`` before the table is readied;
``ready()`` then checks that the schemas can share the table, creates the
table and any missing indexes, and waits for them as requested.

Lifecycle:

    schemas registered --ready()/assume_ready()--> ready
    any state --destroy_connection()--> destroyed (terminal)
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Union

from ..config import DynamoDMConfig, RetryOptions
from ..core import TableGateway, create_table_gateway
from ..exceptions import (
    ConfigurationError,
    ConnectionError,
    ConsistencyError,
    ValidationError,
)
from ..models import create_model
from ..schema import Schema
from ..schema.indexes import IndexSpec
from .indexes import check_index_compatibility, diff_indexes, required_indexes
from .retry import RetryPolicy

VALID_TABLE_NAME = re.compile(r'^[a-zA-Z0-9_.-]{3,255}$')

TABLE_STATUS_CREATING = 'CREATING'
TABLE_STATUS_UPDATING = 'UPDATING'
TABLE_STATUS_ACTIVE = 'ACTIVE'
INDEX_STATUSES_CONVERGING = ('CREATING', 'UPDATING', 'ACTIVE')


class Table:
    """
    A DynamoDB table shared by one or more schemas.

    Args:
        name: Table name (3-255 characters of a-z, A-Z, 0-9, '_', '-' and '.')
        config: Connection and coordination settings (defaults from environment)
        gateway: Optional table gateway; by default one is created from config and
            owned (and closed) by the table
        retry: Backoff policy for batch reads, overriding config.retry
        logger: Parent logger

    Example:
        table = Table('my-app-table')
        Comment = table.model(comment_schema)
        await table.ready()
    """

    def __init__(
        self,
        name: str,
        *,
        config: Optional[DynamoDMConfig] = None,
        gateway: Optional[TableGateway] = None,
        retry: Union[RetryOptions, Dict[str, Any], None] = None,
        logger: Optional[logging.Logger] = None
    ):
        if not isinstance(name, str):
            raise ConfigurationError('Invalid table name: must be a string.')
        if not VALID_TABLE_NAME.match(name):
            raise ConfigurationError(
                f'Invalid table name "{name}": Must be between 3 and 255 characters long, '
                "and may contain only the characters a-z, A-Z, 0-9, '_', '-', and '.'."
            )
        self.name = name
        self.config = config or DynamoDMConfig()

        base_logger = logger if logger is not None else logging.getLogger('dynamodm')
        self._base_logger = base_logger.getChild('table')
        self.logger = logging.LoggerAdapter(self._base_logger, {'table': name})

        self._owns_gateway = gateway is None
        self._gateway = gateway if gateway is not None else create_table_gateway(self.config, name)

        if isinstance(retry, dict):
            retry_options = RetryOptions(**{**self.config.retry.model_dump(), **retry})
        elif retry is not None:
            retry_options = retry
        else:
            retry_options = self.config.retry
        self.retry_policy = RetryPolicy(retry_options)

        self._models: Dict[Schema, type] = {}
        self._is_ready = False
        self._is_destroyed = False
        self._indices: List[IndexSpec] = []
        self._id_field_name = ''
        self._type_field_name = ''

    def __repr__(self) -> str:
        return f"Table(name={self.name!r}, ready={self._is_ready})"

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self._is_ready

    @property
    def indices(self) -> List[IndexSpec]:
        """Resolved indexes, in registration order (set when ready)."""
        return self._indices

    @property
    def id_field_name(self) -> str:
        return self._id_field_name

    @property
    def type_field_name(self) -> str:
        return self._type_field_name

    @property
    def gateway(self) -> TableGateway:
        if self._is_destroyed:
            raise ConnectionError('Connection has been destroyed.', context={'table': self.name})
        return self._gateway

    @property
    def models(self) -> List[type]:
        return list(self._models.values())

    def model_logger(self, schema: Schema) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(self._base_logger, {'table': self.name, 'model': schema.name})

    # -------------------------------------------------------------------------
    # Schema registration
    # -------------------------------------------------------------------------

    def model(self, schema: Schema) -> type:
        """
        Register a schema and return its model class.

        Registering the same schema again returns the same model.

        Raises:
            ConfigurationError: If schema is not a Schema, or the table is already ready
            ConnectionError: If the connection was destroyed
        """
        if not isinstance(schema, Schema):
            raise ConfigurationError('The model schema must be a valid dynamodm Schema.')
        if self._is_destroyed:
            raise ConnectionError('Connection has been destroyed.', context={'table': self.name})
        if schema in self._models:
            return self._models[schema]
        if self._is_ready:
            raise ConfigurationError(f"Table {self.name} ready() has been called, so more schemas cannot be added now.")

        model = create_model(self, schema, self.model_logger(schema))
        self._models[schema] = model
        return model

    # -------------------------------------------------------------------------
    # Readiness
    # -------------------------------------------------------------------------

    async def ready(self, *, allow_aliased_schemas: bool = False, wait_for_indexes: bool = False) -> None:
        """
        Make sure the table exists with the indexes the registered schemas need.

        1. check that the schemas share id and type field names (and names)
        2. compute the required indexes
        3. check index and attribute-type compatibility
        4. create the table (an existing table is fine)
        5. wait until the table is ACTIVE or UPDATING, and check its key schema
        6. compare the table's indexes with the required ones
        7. create missing indexes, one at a time; only the first one unless
           wait_for_indexes is set
        8. with wait_for_indexes, wait until the table and all indexes are ACTIVE

        Indexes that exist with a different definition are logged, never changed.

        Args:
            allow_aliased_schemas: Allow several schemas with the same name
            wait_for_indexes: Wait for all indexes to become ACTIVE (also when
                already ready)

        Raises:
            ConfigurationError: If no schema is registered
            ConsistencyError: If the schemas cannot share the table, or the
                existing table has an incompatible key schema
            ConnectionError: If the connection was destroyed
        """
        if self._is_ready and not wait_for_indexes:
            return
        gateway = self.gateway
        attribute_definitions = self._prepare(allow_aliased_schemas)
        table_key_schema = [{'AttributeName': self._id_field_name, 'KeyType': 'HASH'}]

        created = await gateway.create_table(
            attribute_definitions=attribute_definitions,
            key_schema=table_key_schema,
            global_secondary_indexes=[index.to_description() for index in self._indices] or None
        )
        if created:
            self.logger.info(f"Created table {self.name}")

        description = await self._wait_for_table(table_key_schema)
        missing, differing = diff_indexes(self._indices, description.get('GlobalSecondaryIndexes'))
        if missing or differing:
            await self._update_indexes(missing, differing, description, wait_for_indexes)

        if wait_for_indexes:
            await self._wait_for_indexes_active()

        self._is_ready = True

    def assume_ready(self, *, allow_aliased_schemas: bool = False) -> None:
        """
        Mark the table ready without any requests.

        For callers that know the table and indexes already exist (e.g. short
        lived processes). The registered schemas are still checked for
        compatibility.
        """
        if self._is_destroyed:
            raise ConnectionError('Connection has been destroyed.', context={'table': self.name})
        self._prepare(allow_aliased_schemas)
        self._is_ready = True

    async def ensure_ready(self) -> None:
        """ready(), unless the table is already ready."""
        if not self._is_ready:
            await self.ready()

    def _prepare(self, allow_aliased_schemas: bool) -> List[Dict[str, str]]:
        if not self._models:
            raise ConfigurationError('At least one schema is required in a table.')
        self._id_field_name, self._type_field_name = self._basic_ready_checks(allow_aliased_schemas)
        schemas = list(self._models)
        indexes = required_indexes(schemas, self._id_field_name, self._type_field_name)
        attribute_definitions = check_index_compatibility(indexes, schemas, self._id_field_name)
        # identical declarations of one index by several schemas resolve to one index
        unique: Dict[str, IndexSpec] = {}
        for index in indexes:
            unique.setdefault(index.name, index)
        self._indices = list(unique.values())
        return attribute_definitions

    def _basic_ready_checks(self, allow_aliased_schemas: bool):
        id_fields = list(dict.fromkeys(schema.id_field_name for schema in self._models))
        type_fields = list(dict.fromkeys(schema.type_field_name for schema in self._models))

        if not allow_aliased_schemas:
            names: Dict[str, int] = {}
            for schema in self._models:
                names[schema.name] = names.get(schema.name, 0) + 1
            for name, count in names.items():
                if count > 1:
                    raise ConsistencyError(
                        f"Schemas in the same table must have unique names ({name} refers to multiple unique schemas)."
                    )
        if len(id_fields) > 1:
            raise ConsistencyError(
                f"Schemas in the same table must have the same id_field_name (encountered:{','.join(id_fields)})."
            )
        if len(type_fields) > 1:
            raise ConsistencyError(
                f"Schemas in the same table must have the same type_field_name (encountered:{','.join(type_fields)})."
            )
        return id_fields[0], type_fields[0]

    async def _wait_for_table(self, table_key_schema: List[Dict[str, str]]) -> Dict[str, Any]:
        while True:
            description = await self.gateway.describe_table()
            status = description.get('TableStatus')
            if status == TABLE_STATUS_CREATING:
                await asyncio.sleep(self.config.poll_interval_seconds)
                continue
            if status not in (TABLE_STATUS_ACTIVE, TABLE_STATUS_UPDATING):
                raise ConsistencyError(f"Table {self.name} status is {status}.")

            self.logger.info(f"Table {self.name} now {status}")
            key_schema = [(k['AttributeName'], k['KeyType']) for k in description.get('KeySchema', [])]
            expected = [(k['AttributeName'], k['KeyType']) for k in table_key_schema]
            if key_schema != expected:
                raise ConsistencyError(
                    f"Table {self.name} exists with incompatible key schema {description.get('KeySchema')}, "
                    f'the schemas require "{self._id_field_name}" to be the hash key.'
                )
            return description

    async def _update_indexes(
        self,
        missing: List[IndexSpec],
        differing: List[IndexSpec],
        description: Dict[str, Any],
        wait_for_indexes: bool
    ) -> None:
        if differing:
            self.logger.warning(
                f"WARNING: indexes \"{','.join(index.name for index in differing)}\" differ from the current "
                f"specifications, but these will not be automatically updated. "
                f"Existing indexes: {description.get('GlobalSecondaryIndexes')}"
            )
        # only one index can be created at a time
        for index in missing:
            self.logger.info(f"Updating table {self.name}: creating index {index.name}")
            await self.gateway.update_table(
                attribute_definitions=index.required_attributes,
                global_secondary_index_updates=[{'Create': index.to_description()}]
            )
            if not wait_for_indexes:
                break
            await self._wait_for_indexes_active()

    async def _wait_for_indexes_active(self) -> None:
        while True:
            description = await self.gateway.describe_table()
            status = description.get('TableStatus')
            index_statuses = [gsi.get('IndexStatus') for gsi in description.get('GlobalSecondaryIndexes') or []]
            if status == TABLE_STATUS_ACTIVE and all(s == 'ACTIVE' for s in index_statuses):
                return
            if status in (TABLE_STATUS_UPDATING, TABLE_STATUS_ACTIVE) and all(
                s in INDEX_STATUSES_CONVERGING for s in index_statuses
            ):
                await asyncio.sleep(self.config.poll_interval_seconds)
                continue
            raise ConsistencyError(
                f"Table {self.name} status is {status}, index statuses are [{', '.join(map(str, index_statuses))}]."
            )

    # -------------------------------------------------------------------------
    # Table-level operations
    # -------------------------------------------------------------------------

    async def get_by_id(self, id: str, **options):
        """
        Load a document by id without knowing its type.

        The model is found from the ``{schema name}.`` prefix of the id, so this
        only works with the default id format.

        Raises:
            ValidationError: If no registered schema matches the id
            ConsistencyError: If several registered schemas match the id
        """
        if not isinstance(id, str) or not id:
            raise ValidationError('Invalid id: must be string of nonzero length.')
        matching = [model for schema, model in self._models.items() if id.startswith(f"{schema.name}.")]
        if len(matching) > 1:
            raise ConsistencyError(f'Table has multiple ambiguous model types for id "{id}", so it cannot be loaded generically.')
        if not matching:
            raise ValidationError(f'Table has no matching model type for id "{id}", so it cannot be loaded.')
        return await matching[0].get_by_id(id, **options)

    async def delete_table(self) -> None:
        """Delete the DynamoDB table."""
        self.logger.info(f"Deleting table {self.name}")
        await self.gateway.delete_table()
        self._is_ready = False

    async def destroy_connection(self) -> None:
        """
        Release the connection. The table cannot be used afterwards.

        A gateway passed in by the caller is left open.
        """
        self._is_ready = False
        if self._owns_gateway and self._gateway is not None:
            self._gateway.close()
        self._gateway = None
        self._is_destroyed = True
        self._models.clear()

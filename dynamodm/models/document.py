"""
Document runtime.

``Document`` is the base class of every model. A model is a Document
subclass created per schema by ``table.model(schema)``; its instances are
documents: schema-validated records with optimistic concurrency.

Field values live in a plain dict (``_data``) and are reached through
attribute and item access. Virtual properties, schema methods and schema
statics are resolved by explicit dispatch, so any name that the runtime
does not reserve can be used as a field name.

Lifecycle of a document:

    new (constructed) --save()--> persisted --remove()--> removed

Documents loaded through get/query are created persisted. Documents built
from an index projection (``only_projected=True``) are partial: they cannot
be saved, and can only be removed when their version is known.
"""

import inspect
import logging
from types import MethodType
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional

from ..exceptions import (
    ConflictError,
    DuplicateIdError,
    PartialDocumentError,
    ValidationError,
    VersionConflictError,
)
from ..query import (
    FetchPipeline,
    batch_get_by_ids,
    convert_query,
    query_id_batches,
    query_ids,
    query_item_batches,
)
from ..schema.validation import describe_first_error
from ..utils import utc_now
from .options import (
    GetByIdOptions,
    QueryManyIdsOptions,
    QueryManyOptions,
    QueryOneIdOptions,
    QueryOneOptions,
    RawQueryIteratorIdsOptions,
    RawQueryManyIdsOptions,
    RawQueryOneIdOptions,
    parse_options,
)

logger = logging.getLogger(__name__)

INTERNAL_ATTRIBUTES = frozenset({'_data', '_is_new', '_is_removed', '_is_partial', '_virtual_values'})

CONDITIONAL_CHECK_FAILED = 'ConditionalCheckFailedException'


def deep_clone(value: Any) -> Any:
    """Copy dicts and lists recursively; nested documents become dicts of their fields."""
    if isinstance(value, list):
        return [deep_clone(item) for item in value]
    if isinstance(value, dict):
        return {key: deep_clone(item) for key, item in value.items()}
    if isinstance(value, Document):
        return {key: deep_clone(item) for key, item in value._data.items()}
    return value


def _is_conditional_check_failure(error: ConflictError) -> bool:
    # an error raised without a storage error code is treated as a failed condition
    return (error.error_code or CONDITIONAL_CHECK_FAILED) == CONDITIONAL_CHECK_FAILED


class DocumentMeta(type):
    """Metaclass of models: exposes ``Model.table``, ``Model.type`` and schema statics."""

    @property
    def table(cls):
        return cls._table

    @property
    def type(cls) -> Optional[str]:
        return cls._schema.name if cls._schema is not None else None

    def __getattr__(cls, name: str) -> Any:
        if not name.startswith('__'):
            for klass in cls.__mro__:
                statics = klass.__dict__.get('_statics')
                if statics and name in statics:
                    static = statics[name]
                    return MethodType(static, cls) if callable(static) else static
        raise AttributeError(f"type object '{cls.__name__}' has no attribute '{name}'")


class Document(metaclass=DocumentMeta):
    """
    Base class of models.

    Not instantiated directly: models are created with ``table.model(schema)``.

    Args:
        params: Field values
        **fields: More field values (override params)

    Raises:
        ValidationError: If the fields do not match the schema

    Example:
        Comment = table.model(comment_schema)
        comment = Comment(text='hello', user='u1')
        await comment.save()
        comment.v  # 1
    """

    _schema = None
    _table = None
    _logger: Any = logger
    _virtual_properties: Dict[str, Any] = {}
    _methods: Dict[str, Any] = {}
    _statics: Dict[str, Any] = {}

    def __init__(self, params: Optional[Dict[str, Any]] = None, **fields):
        schema = type(self)._schema
        if schema is None:
            raise TypeError('Document cannot be instantiated directly, create a model with table.model(schema).')
        data = dict(params or {})
        data.update(fields)
        # virtuals are assigned through their setters, never stored
        virtuals = type(self)._virtual_properties
        virtual_params = {name: data.pop(name) for name in list(data) if name in virtuals}

        if not data.get(schema.id_field_name):
            data[schema.id_field_name] = schema.new_id(data, {})
        if not data.get(schema.type_field_name):
            data[schema.type_field_name] = schema.name
        if schema.version_field_name and not data.get(schema.version_field_name):
            data[schema.version_field_name] = 0

        self._init_state(data, is_new=True, is_partial=False)
        for name, value in virtual_params.items():
            self._set_field(name, value)

        errors = schema.validate(self._data)
        if errors:
            raise ValidationError(
                f"Document does not match schema for {schema.name}: {describe_first_error(errors)}.",
                errors=errors
            )

    def _init_state(self, data: Dict[str, Any], is_new: bool, is_partial: bool) -> None:
        object.__setattr__(self, '_data', data)
        object.__setattr__(self, '_is_new', is_new)
        object.__setattr__(self, '_is_removed', False)
        object.__setattr__(self, '_is_partial', is_partial)
        object.__setattr__(self, '_virtual_values', {})

    # -------------------------------------------------------------------------
    # Field access
    # -------------------------------------------------------------------------

    def __getattr__(self, name: str) -> Any:
        # only called when normal lookup fails
        if name.startswith('__') or name in INTERNAL_ATTRIBUTES:
            raise AttributeError(name)
        data = self._data
        if name in data:
            return data[name]
        cls = type(self)
        virtual = cls._virtual_properties.get(name)
        if virtual is not None:
            return virtual.get(self)
        if name in cls._methods:
            method = cls._methods[name]
            return MethodType(method, self) if callable(method) else method
        if name in cls._schema.properties:
            return None
        raise AttributeError(f"'{cls.__name__}' object has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name in INTERNAL_ATTRIBUTES:
            object.__setattr__(self, name, value)
        else:
            self._set_field(name, value)

    def __delattr__(self, name: str) -> None:
        if name in INTERNAL_ATTRIBUTES:
            raise AttributeError(f"'{name}' cannot be deleted")
        self._data.pop(name, None)

    def _set_field(self, name: str, value: Any) -> None:
        virtual = type(self)._virtual_properties.get(name)
        if virtual is not None:
            virtual.set(self, value)
        elif value is None:
            # None unsets a field
            self._data.pop(name, None)
        else:
            self._data[name] = value

    def __getitem__(self, name: str) -> Any:
        if name in self._data:
            return self._data[name]
        virtual = type(self)._virtual_properties.get(name)
        if virtual is not None:
            return virtual.get(self)
        raise KeyError(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self._set_field(name, value)

    def __delitem__(self, name: str) -> None:
        del self._data[name]

    def __contains__(self, name: object) -> bool:
        return name in self._data or name in type(self)._virtual_properties

    def __iter__(self) -> Iterator[str]:
        names = list(self._data)
        names.extend(name for name, virtual in type(self)._virtual_properties.items() if virtual.enumerable)
        return iter(names)

    def __len__(self) -> int:
        return len(list(iter(self)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def is_new(self) -> bool:
        """True until the document has been saved (or if it was never stored)."""
        return self._is_new

    @property
    def is_removed(self) -> bool:
        return self._is_removed

    @property
    def is_partial(self) -> bool:
        """True for documents built from an index projection."""
        return self._is_partial

    def _get_id(self) -> Any:
        return self._data.get(type(self)._schema.id_field_name)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def save(self) -> 'Document':
        """
        Validate and store the document.

        New documents are written only if their id is not stored yet. Stored
        documents are written only if the stored version is the one that was
        loaded; each save increments the version.

        Raises:
            PartialDocumentError: If the document was built from an index projection
            ValidationError: If the document does not match the schema
            DuplicateIdError: If a new document's id is already stored
            VersionConflictError: If the stored document changed since it was loaded
        """
        cls = type(self)
        schema = cls._schema
        table = cls._table
        doc_id = self._get_id()
        if self._is_partial:
            raise PartialDocumentError(
                f'Document .{schema.id_field_name}="{doc_id}" was built from an index projection '
                'and has partial data, so it cannot be saved.'
            )
        await table.ensure_ready()

        now = utc_now()
        if self._is_new and schema.created_at_field_name:
            self._data[schema.created_at_field_name] = now
        if schema.updated_at_field_name:
            self._data[schema.updated_at_field_name] = now

        item = deep_clone(self._data)
        errors = schema.marshal(item)
        if errors:
            raise ValidationError(
                f"Document does not match schema for {schema.name}: {describe_first_error(errors)}.",
                errors=errors
            )

        condition_expression = None
        attribute_names = None
        attribute_values = None
        version_field = schema.version_field_name
        if self._is_new:
            condition_expression = 'attribute_not_exists(#idFieldName)'
            attribute_names = {'#idFieldName': schema.id_field_name}
            if version_field:
                item[version_field] = 1
        elif version_field:
            previous_version = item.get(version_field)
            if not previous_version:
                cls._logger.warning(f"Adding missing version field {version_field} to document {doc_id}.")
                item[version_field] = 1
                # another writer may still be adding the version field
                condition_expression = 'attribute_not_exists(#v)'
                attribute_names = {'#v': version_field}
            else:
                item[version_field] = previous_version + 1
                condition_expression = '#v = :v'
                attribute_names = {'#v': version_field}
                attribute_values = {':v': previous_version}

        cls._logger.debug(f"save {doc_id} (condition: {condition_expression})")
        try:
            await table.gateway.put_item(
                item,
                condition_expression=condition_expression,
                expression_attribute_names=attribute_names,
                expression_attribute_values=attribute_values,
                resource_id=doc_id
            )
        except ConflictError as e:
            if not _is_conditional_check_failure(e):
                raise
            if self._is_new:
                raise DuplicateIdError(
                    f'An item already exists with id field .{schema.id_field_name}="{doc_id}"',
                    resource_id=doc_id,
                    original_error=e
                ) from e
            raise VersionConflictError(
                f'Version error: the model .{schema.id_field_name}="{doc_id}" was updated by another process '
                'between loading and saving.',
                resource_id=doc_id,
                original_error=e
            ) from e
        cls._logger.debug(f"save {doc_id} done")

        self._is_new = False
        if version_field:
            self._data[version_field] = item[version_field]
        return self

    async def remove(self) -> 'Document':
        """
        Delete the stored document.

        Versioned documents are deleted only if the stored version is the one
        that was loaded.

        Raises:
            PartialDocumentError: If the document is partial and its version is unknown
            VersionConflictError: If the stored document changed since it was loaded
        """
        cls = type(self)
        schema = cls._schema
        table = cls._table
        doc_id = self._get_id()
        version_field = schema.version_field_name
        if self._is_partial and version_field and self._data.get(version_field) is None:
            raise PartialDocumentError(
                f'Document .{schema.id_field_name}="{doc_id}" was built from an index projection without '
                f'its version field .{version_field}, so it cannot be removed.'
            )
        await table.ensure_ready()

        condition_expression = None
        attribute_names = None
        attribute_values = None
        if version_field:
            version = self._data.get(version_field)
            attribute_names = {'#v': version_field}
            if not version:
                cls._logger.warning(f'Removing versioned document .{version_field}="{doc_id}" missing version field.')
                condition_expression = 'attribute_not_exists(#v)'
            else:
                condition_expression = '#v = :v'
                attribute_values = {':v': version}

        cls._logger.debug(f"remove {doc_id} (condition: {condition_expression})")
        try:
            await table.gateway.delete_item(
                {schema.id_field_name: doc_id},
                condition_expression=condition_expression,
                expression_attribute_names=attribute_names,
                expression_attribute_values=attribute_values,
                resource_id=doc_id
            )
        except ConflictError as e:
            if not _is_conditional_check_failure(e):
                raise
            raise VersionConflictError(
                f'Version error: the model .{schema.id_field_name}="{doc_id}" was updated by another process '
                'between loading and removing.',
                resource_id=doc_id,
                original_error=e
            ) from e
        cls._logger.debug(f"remove {doc_id} done")

        self._is_removed = True
        return self

    async def to_object(self, virtuals: bool = True, **options) -> Any:
        """
        Plain representation of the document.

        Includes every field and, unless ``virtuals=False``, every virtual
        property. The result is then passed through the schema converters in
        order, each called as ``converter(doc, value, options)`` and returning
        the new value; converters may be async.
        """
        cls = type(self)
        value: Any = deep_clone(self._data)
        if virtuals:
            for name, virtual in cls._virtual_properties.items():
                value[name] = virtual.get(self)
        options = {'virtuals': virtuals, **options}
        for converter in cls._schema.converters:
            value = converter(self, value, options)
            if inspect.isawaitable(value):
                value = await value
        return value

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def _from_storage(cls, item: Dict[str, Any], partial: bool = False) -> 'Document':
        """Build a persisted document from a stored item (converted in place)."""
        schema = cls._schema
        errors = schema.unmarshal(item, partial=partial)
        if errors:
            loaded_type = item.get(schema.type_field_name)
            if loaded_type != schema.name:
                message = (
                    f'Document does not match schema for {schema.name}. The loaded document has a different type '
                    f'"{loaded_type}", and the schema is incompatible: {describe_first_error(errors)}.'
                )
            else:
                message = f"Document does not match schema for {schema.name}: {describe_first_error(errors)}."
            raise ValidationError(message, errors=errors)

        if not partial:
            # records stored before versioning was enabled have no version
            if schema.version_field_name and not item.get(schema.version_field_name):
                item[schema.version_field_name] = 0
        doc = cls.__new__(cls)
        doc._init_state(item, is_new=False, is_partial=partial)
        return doc

    @classmethod
    async def get_by_id(cls, id: str, **options) -> Optional['Document']:
        """
        Load a document by id.

        Options:
            abort_signal: Signal used to cancel the request
            consistent_read: Use a strongly consistent read

        Returns:
            The document, or None if no document has this id
        """
        opts = parse_options(GetByIdOptions, options)
        table = cls._table
        await table.ensure_ready()
        if not isinstance(id, str) or not id:
            raise ValidationError('Invalid id: must be string of nonzero length.')
        cls._logger.debug(f"getById {id}")
        item = await table.gateway.get_item(
            {cls._schema.id_field_name: id},
            consistent_read=opts.consistent_read,
            abort_signal=opts.abort_signal
        )
        cls._logger.debug(f"getById {id} {'found' if item is not None else 'not found'}")
        return None if item is None else cls._from_storage(item)

    @classmethod
    async def get_by_ids(cls, ids: List[str], **options) -> List[Optional['Document']]:
        """
        Load documents by id.

        Returns:
            Documents in the order of ids, with None for ids that are not stored
        """
        opts = parse_options(GetByIdOptions, options)
        return await cls._get_by_ids(ids, opts.consistent_read, opts.abort_signal)

    @classmethod
    async def _get_by_ids(cls, ids, consistent_read: bool, abort_signal) -> List[Optional['Document']]:
        table = cls._table
        await table.ensure_ready()
        if not isinstance(ids, list) or not all(isinstance(doc_id, str) and doc_id for doc_id in ids):
            raise ValidationError('Invalid ids: must be list of strings of nonzero length.')
        items = await batch_get_by_ids(
            table.gateway,
            ids,
            cls._schema.id_field_name,
            table.retry_policy,
            consistent_read=consistent_read,
            abort_signal=abort_signal,
            logger=cls._logger
        )
        return [None if item is None else cls._from_storage(item) for item in items]

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @classmethod
    async def query_one(cls, query: Dict[str, Any], **options) -> Optional['Document']:
        """First document matching query, or None. Options as query_many (limit may only be 1)."""
        opts = parse_options(QueryOneOptions, options)
        raw_query_options = {'Limit': 1, **_raw_query_request(opts)}
        docs = await cls._query_many(query, opts, limit=1, raw_query_options=raw_query_options)
        return docs[0] if docs else None

    @classmethod
    async def query_one_id(cls, query: Dict[str, Any], **options) -> Optional[str]:
        """Id of the first document matching query, or None."""
        opts = parse_options(QueryOneIdOptions, options)
        raw_query_options = {'Limit': 1, **_raw_query_request(opts)}
        ids = await cls._query_many_ids(query, opts, limit=1, raw_query_options=raw_query_options)
        return ids[0] if ids else None

    @classmethod
    async def query_many(cls, query: Dict[str, Any], **options) -> List['Document']:
        """
        Documents matching a simplified query.

        The query is answered from the index matching its fields, e.g.
        ``{'user': 'u1', 'created': {'$gt': since}}``. Ids are read from the
        index page by page while the documents of earlier pages are fetched.

        Options:
            limit: Maximum number of documents returned (default 50)
            abort_signal: Signal used to cancel the requests
            start_after: A document of this model to continue after
            raw_query_options: Native Query parameters (e.g. ``{'ScanIndexForward': False}``)
            raw_fetch_options: Native fetch parameters (``{'ConsistentRead': True}``)
            only_projected: Build documents from the index projection instead of
                fetching them (partial unless the index projects all attributes)
        """
        opts = parse_options(QueryManyOptions, options)
        return await cls._query_many(query, opts, limit=opts.limit, raw_query_options=_raw_query_request(opts))

    @classmethod
    async def _query_many(cls, query, opts, limit: int, raw_query_options: Dict[str, Any]) -> List['Document']:
        table = cls._table
        await table.ensure_ready()
        request, index = convert_query(cls, query, limit, opts.start_after, raw_query_options)
        id_field_name = cls._schema.id_field_name
        cls._logger.debug(f"queryMany {request}")

        if opts.only_projected:
            partial = not index.projects_all_attributes
            docs: List[Document] = []
            async for items in query_item_batches(table.gateway, request, limit, opts.abort_signal):
                docs.extend(cls._from_storage(item, partial=partial) for item in items)
            return docs

        consistent_read = bool(opts.raw_fetch_options and opts.raw_fetch_options.ConsistentRead)

        async def fetch(ids):
            return await cls._get_by_ids(ids, consistent_read, opts.abort_signal)

        pipeline = FetchPipeline(fetch)
        docs = await pipeline.run(
            query_id_batches(table.gateway, request, id_field_name, limit, opts.abort_signal)
        )
        # documents removed between the query and the fetch are skipped
        return [doc for doc in docs if doc is not None]

    @classmethod
    async def query_many_ids(cls, query: Dict[str, Any], **options) -> List[str]:
        """Ids of the documents matching a simplified query. Options as query_many, without fetch options."""
        opts = parse_options(QueryManyIdsOptions, options)
        return await cls._query_many_ids(query, opts, limit=opts.limit, raw_query_options=_raw_query_request(opts))

    @classmethod
    async def _query_many_ids(cls, query, opts, limit: int, raw_query_options: Dict[str, Any]) -> List[str]:
        table = cls._table
        await table.ensure_ready()
        request, _ = convert_query(cls, query, limit, opts.start_after, raw_query_options)
        cls._logger.debug(f"queryManyIds {request}")
        ids: List[str] = []
        async for batch in query_id_batches(table.gateway, request, cls._schema.id_field_name, limit, opts.abort_signal):
            ids.extend(batch)
        return ids

    @classmethod
    async def raw_query_one_id(cls, raw_query: Dict[str, Any], **options) -> Optional[str]:
        """Id of the first item of a native Query request, or None."""
        opts = parse_options(RawQueryOneIdOptions, options)
        table = cls._table
        await table.ensure_ready()
        request = {**raw_query, 'TableName': table.name, 'Limit': 1}
        cls._logger.debug(f"rawQueryOneId {request}")
        response = await table.gateway.query(abort_signal=opts.abort_signal, **request)
        items = response.get('Items') or []
        return items[0].get(cls._schema.id_field_name) if items else None

    @classmethod
    async def raw_query_many_ids(cls, raw_query: Dict[str, Any], **options) -> List[str]:
        """Ids of the items of a native Query request, up to limit (default 50)."""
        opts = parse_options(RawQueryManyIdsOptions, options)
        table = cls._table
        await table.ensure_ready()
        request = {'TableName': table.name, **raw_query}
        cls._logger.debug(f"rawQueryManyIds {request}")
        ids: List[str] = []
        async for batch in query_id_batches(
            table.gateway, request, cls._schema.id_field_name, opts.limit, opts.abort_signal
        ):
            ids.extend(batch)
        return ids

    @classmethod
    async def raw_query_iterator_ids(cls, raw_query: Dict[str, Any], **options) -> AsyncIterator[str]:
        """
        Iterate over the ids of the items of a native Query request.

        Pages are requested as the iteration proceeds; there is no limit unless
        ``limit`` is given.

        Example:
            async for doc_id in Comment.raw_query_iterator_ids({
                'IndexName': 'byUser',
                'KeyConditionExpression': '#u = :u',
                'ExpressionAttributeNames': {'#u': 'user'},
                'ExpressionAttributeValues': {':u': 'u1'},
            }):
                ...
        """
        opts = parse_options(RawQueryIteratorIdsOptions, options)
        table = cls._table
        await table.ensure_ready()
        request = {'TableName': table.name, **raw_query}
        cls._logger.debug(f"rawQueryIteratorIds {request}")
        ids = query_ids(table.gateway, request, cls._schema.id_field_name, opts.limit, opts.abort_signal)
        try:
            async for doc_id in ids:
                yield doc_id
        finally:
            await ids.aclose()


def _raw_query_request(opts) -> Dict[str, Any]:
    return opts.raw_query_options.to_request() if opts.raw_query_options is not None else {}

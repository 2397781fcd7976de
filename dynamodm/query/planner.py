"""
Index planner: translate simplified queries into DynamoDB Query requests.

A simplified query has one or two entries. One of them must be an equality,
because DynamoDB requires an exact match on the hash key of the queried
index. The planner:

1. picks the index whose (hash key, sort key) match the query fields
2. validates every query value against the declared type of its field and
   marshals it for storage
3. builds the KeyConditionExpression with ``#n{i}`` name and ``:v{i}x{j}``
   value placeholders, so field names never collide with reserved words
4. reconstructs ExclusiveStartKey from a ``start_after`` document
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..exceptions import UnsupportedQueryError, ValidationError
from ..schema.indexes import IndexSpec
from ..schema.validation import describe_first_error, marshal_value, validate_value
from .conditions import Condition, QueryEntry, parse_query_entries


_CONDITION_TEMPLATES = {
    Condition.EQUAL: "#n{i} = :v{i}x0",
    Condition.LT: "#n{i} < :v{i}x0",
    Condition.LTE: "#n{i} <= :v{i}x0",
    Condition.GT: "#n{i} > :v{i}x0",
    Condition.GTE: "#n{i} >= :v{i}x0",
    Condition.BETWEEN: "#n{i} BETWEEN :v{i}x0 AND :v{i}x1",
    Condition.BEGINS: "begins_with(#n{i}, :v{i}x0)",
}


def _index_matches(index: IndexSpec, entries: List[QueryEntry]) -> bool:
    if len(entries) == 1:
        return index.hash_key == entries[0].key
    first, second = entries
    if first.is_equality and index.hash_key == first.key and index.sort_key == second.key:
        return True
    if second.is_equality and index.hash_key == second.key and index.sort_key == first.key:
        return True
    return False


def select_index(
    entries: List[QueryEntry],
    indices: Sequence[IndexSpec],
    logger: Union[logging.Logger, logging.LoggerAdapter, None] = None,
    query: Optional[Dict[str, Any]] = None
) -> IndexSpec:
    """
    Choose the index answering a query.

    Candidates are the indices whose hash key matches the single query field,
    or whose (hash key, sort key) pair matches the two query fields with the
    equality entry on the hash key. With several candidates, an equality-only
    single-field query prefers hash-only indices; any remaining ambiguity is
    resolved by taking the first candidate in registration order.

    Args:
        entries: Parsed query entries
        indices: The table's indices, in registration order
        logger: Logger for ambiguity warnings
        query: The original query (for error messages)

    Raises:
        UnsupportedQueryError: If the query shape is unsupported, or no index matches
    """
    log = logger if logger is not None else logging.getLogger(__name__)
    if len(entries) not in (1, 2):
        raise UnsupportedQueryError(
            f'Unsupported query: "{query!r}" Queries must have at most two properties '
            'to match against index hash and range attributes.',
            query
        )
    if not any(entry.is_equality for entry in entries):
        raise UnsupportedQueryError(
            f'Unsupported query: "{query!r}" Queries must include an equality condition for the index hash key.',
            query
        )

    candidates = [index for index in indices if _index_matches(index, entries)]
    if not candidates:
        raise UnsupportedQueryError(
            f'Unsupported query: "{query!r}". No index found for query fields '
            f'[{", ".join(entry.key for entry in entries)}]',
            query
        )

    if len(candidates) > 1 and len(entries) == 1:
        # a query on a hash key alone is best answered by an index without a sort key
        hash_only = [index for index in candidates if not index.sort_key]
        if hash_only:
            candidates = hash_only

    if len(candidates) > 1:
        log.warning(
            f"multiple indexes match query {query!r}: {[index.name for index in candidates]}, "
            f"using {candidates[0].name}"
        )
    return candidates[0]


def key_condition_expression(entries: List[QueryEntry]) -> str:
    """Build the KeyConditionExpression for the query entries.

    Example:
        >>> key_condition_expression(parse_query_entries({'a': 1, 'b': {'$between': [1, 2]}}))
        '#n0 = :v0x0 AND #n1 BETWEEN :v1x0 AND :v1x1'
    """
    return ' AND '.join(
        _CONDITION_TEMPLATES[entry.condition].format(i=i) for i, entry in enumerate(entries)
    )


def expression_attribute_names(entries: List[QueryEntry]) -> Dict[str, str]:
    return {f"#n{i}": entry.key for i, entry in enumerate(entries)}


def expression_attribute_values(entries: List[QueryEntry]) -> Dict[str, Any]:
    return {
        f":v{i}x{j}": value
        for i, entry in enumerate(entries)
        for j, value in enumerate(entry.values)
    }


def marshal_query_values(entries: List[QueryEntry], schema) -> List[QueryEntry]:
    """Validate query values against their field types and marshal them.

    Values of fields that the schema does not declare are passed through.

    Raises:
        ValidationError: If a value does not match the declared field type
    """
    marshalled = []
    for entry in entries:
        descriptor = schema.property_schema(entry.key)
        values = []
        for value in entry.values:
            errors = validate_value(descriptor, value)
            if errors:
                raise ValidationError(
                    f"Value does not match schema for {entry.key}: {describe_first_error(errors)}.",
                    errors
                )
            values.append(marshal_value(descriptor, value))
        marshalled.append(entry.model_copy(update={'values': values}))
    return marshalled


def exclusive_start_key(start_after: Any, model_class: type, index: IndexSpec) -> Dict[str, Any]:
    """
    Reconstruct the ExclusiveStartKey of an index query from a document.

    The key of a global secondary index query is made of the table hash key
    (the id field), the index hash key and, if present, the index sort key.

    Raises:
        ValidationError: If start_after is not an instance of exactly model_class,
            or lacks one of the key attributes
    """
    if type(start_after) is not model_class:
        raise ValidationError(
            f"start_after must be a {model_class.__name__} model instance. "
            "To specify ExclusiveStartKey directly use raw_query_options['ExclusiveStartKey'] instead."
        )
    schema = model_class._schema
    key_names = [schema.id_field_name, index.hash_key]
    if index.sort_key:
        key_names.append(index.sort_key)

    key: Dict[str, Any] = {}
    for name in key_names:
        value = start_after._data.get(name)
        if value is None:
            raise ValidationError(
                f"start_after document has no value for .{name}, which is part of the key of index \"{index.name}\"."
            )
        key[name] = marshal_value(schema.property_schema(name), value)
    return key


def convert_query(
    model_class: type,
    query: Dict[str, Any],
    limit: Optional[int] = None,
    start_after: Any = None,
    raw_query_options: Optional[Dict[str, Any]] = None
) -> Tuple[Dict[str, Any], IndexSpec]:
    """
    Convert a simplified query on a model into a native Query request.

    Args:
        model_class: The model being queried
        query: Simplified query dict
        limit: Logical limit, also used as the DynamoDB Limit
        start_after: Optional document to continue after
        raw_query_options: Native Query options; ExpressionAttributeNames and
            ExpressionAttributeValues are merged with the generated ones, other
            keys override the generated request

    Returns:
        Tuple of (query request, chosen index)
    """
    raw_options = dict(raw_query_options or {})
    extra_names = raw_options.pop('ExpressionAttributeNames', None) or {}
    extra_values = raw_options.pop('ExpressionAttributeValues', None) or {}

    table = model_class._table
    schema = model_class._schema
    entries = parse_query_entries(query)
    index = select_index(entries, table.indices, model_class._logger, query)
    entries = marshal_query_values(entries, schema)

    request: Dict[str, Any] = {
        'IndexName': index.name,
        'TableName': table.name,
        'KeyConditionExpression': key_condition_expression(entries),
        'ExpressionAttributeNames': {**expression_attribute_names(entries), **extra_names},
        'ExpressionAttributeValues': {**expression_attribute_values(entries), **extra_values},
    }
    if start_after is not None:
        request['ExclusiveStartKey'] = exclusive_start_key(start_after, model_class, index)
    if limit:
        # don't evaluate more items than needed; callers using a FilterExpression
        # can pass a larger raw Limit
        request['Limit'] = limit
    request.update(raw_options)
    return request, index

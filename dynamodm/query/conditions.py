"""
Simplified query parsing.

Queries are mongo-like dicts mapping a field name to either a literal
(equality) or a single-condition dict:

    {'user': 'u1'}                                   # user = 'u1'
    {'user': 'u1', 'created': {'$gt': some_time}}    # ... AND created > some_time
    {'user': 'u1', 'tag': {'$begins': 'py'}}         # ... AND begins_with(tag, 'py')
    {'user': 'u1', 'score': {'$between': [1, 10]}}   # ... AND score BETWEEN 1 AND 10
"""

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel

from ..exceptions import UnsupportedQueryError


class Condition(str, Enum):
    EQUAL = "="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    BETWEEN = "between"
    BEGINS = "begins"


# query condition key => (condition, number of values required)
SUPPORTED_CONDITIONS = {
    '$eq': (Condition.EQUAL, 1),
    '$gt': (Condition.GT, 1),
    '$gte': (Condition.GTE, 1),
    '$lt': (Condition.LT, 1),
    '$lte': (Condition.LTE, 1),
    '$between': (Condition.BETWEEN, 2),
    '$begins': (Condition.BEGINS, 1),
}

_SUPPORTED_NAMES = ', '.join(SUPPORTED_CONDITIONS)


class QueryEntry(BaseModel):
    """One field of a simplified query."""

    key: str
    values: List[Any]
    condition: Condition = Condition.EQUAL

    @property
    def is_equality(self) -> bool:
        return self.condition is Condition.EQUAL


def _parse_entry(key: str, value: Any) -> QueryEntry:
    if not isinstance(value, dict):
        return QueryEntry(key=key, values=[value])

    conditions = [k for k in value if isinstance(k, str) and k.startswith('$')]
    if not conditions:
        return QueryEntry(key=key, values=[value])
    if len(conditions) > 1:
        raise UnsupportedQueryError(
            f"Only a single {'/'.join(SUPPORTED_CONDITIONS)} condition is supported in the simple query api."
        )

    condition_key = conditions[0]
    if condition_key not in SUPPORTED_CONDITIONS:
        raise UnsupportedQueryError(
            f'Condition "{condition_key}" is not supported. Supported conditions are: {_SUPPORTED_NAMES}.'
        )
    condition, value_count = SUPPORTED_CONDITIONS[condition_key]
    if value_count == 1:
        return QueryEntry(key=key, values=[value[condition_key]], condition=condition)

    values = value[condition_key]
    if not isinstance(values, (list, tuple)) or len(values) != value_count:
        raise UnsupportedQueryError(
            f'Condition "{condition_key}" in query requires an array of {value_count} values.'
        )
    return QueryEntry(key=key, values=list(values), condition=condition)


def parse_query_entries(query: Dict[str, Any]) -> List[QueryEntry]:
    """
    Convert a simplified query into query entries.

    Example:
        >>> parse_query_entries({'user': 'u1', 'created': {'$gt': 5}})
        [QueryEntry(key='user', values=['u1'], condition=<Condition.EQUAL: '='>),
         QueryEntry(key='created', values=[5], condition=<Condition.GT: '>'>)]

    Raises:
        UnsupportedQueryError: If a field has several conditions, an unknown
            condition, or the wrong number of values for its condition
    """
    if not isinstance(query, dict):
        raise UnsupportedQueryError(f'Unsupported query: "{query!r}" Queries must be dicts.', None)
    return [_parse_entry(key, value) for key, value in query.items()]

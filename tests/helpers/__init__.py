"""
Test helpers.

FakeTableGateway is an in-memory implementation of the TableGateway
interface. Items are stored the way the boto3 Table resource returns them
(numbers as Decimal, binaries as Binary), condition expressions of the forms
used by documents are evaluated, and global secondary index queries support
Limit, ExclusiveStartKey, ScanIndexForward and projections.

Scripted behaviour for tests:
- table_statuses / index_statuses: statuses returned by successive describe_table calls
- unprocessed_script: number of keys left unprocessed by successive batch_get_item calls
- failures: exception raised by the next call of an operation
- max_page_size: items per query page (in addition to Limit)
- latency: seconds each request takes
"""

import asyncio
import copy
import re
from collections import deque
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from boto3.dynamodb.types import Binary

from dynamodm.core.abort import run_abortable
from dynamodm.exceptions import ConflictError, NotFoundError

KEY_CONDITION = re.compile(
    r'(?P<between>(?P<bn>#\w+) BETWEEN (?P<bv0>:\w+) AND (?P<bv1>:\w+))'
    r'|(?P<begins>begins_with\((?P<sn>#\w+), (?P<sv>:\w+)\))'
    r'|(?P<compare>(?P<cn>#\w+) (?P<op><=|>=|=|<|>) (?P<cv>:\w+))'
)


def to_stored(value: Any) -> Any:
    """Convert a value the way boto3's serializer accepts it."""
    if isinstance(value, bool) or value is None or isinstance(value, (str, Decimal, Binary)):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        raise TypeError("Float types are not supported. Use Decimal types instead.")
    if isinstance(value, (bytes, bytearray)):
        return Binary(bytes(value))
    if isinstance(value, dict):
        return {k: to_stored(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_stored(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return {to_stored(v) for v in value}
    raise TypeError(f"Unsupported type \"{type(value)}\" for value \"{value}\"")


def conditional_check_failed(resource_id: Optional[str] = None) -> ConflictError:
    error = ConflictError("Conditional check failed - The conditional request failed", resource_id)
    error.context['error_code'] = 'ConditionalCheckFailedException'
    return error


class FakeTableGateway:
    """In-memory table gateway."""

    def __init__(self, table_name: str = 'test-table', latency: float = 0.0, max_page_size: Optional[int] = None):
        self.table_name = table_name
        self.latency = latency
        self.max_page_size = max_page_size

        self.exists = False
        self.key_schema: List[Dict[str, str]] = []
        self.attribute_definitions: List[Dict[str, str]] = []
        self.indexes: Dict[str, Dict[str, Any]] = {}
        self.items: Dict[str, Dict[str, Any]] = {}

        self.table_statuses: deque = deque()
        self.index_statuses: Dict[str, deque] = {}
        self.unprocessed_script: deque = deque()
        self.failures: Dict[str, Exception] = {}

        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.closed = False

    # -------------------------------------------------------------------------
    # Test setup helpers
    # -------------------------------------------------------------------------

    def seed_table(self, key_schema: List[Dict[str, str]], indexes: Optional[List[Dict[str, Any]]] = None) -> None:
        """Make the table exist already, with the given key schema and index descriptions."""
        self.exists = True
        self.key_schema = key_schema
        for description in indexes or []:
            self.indexes[description['IndexName']] = copy.deepcopy(description)

    def seed_item(self, item: Dict[str, Any]) -> None:
        self.items[self._key_value(item)] = to_stored(copy.deepcopy(item))

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @property
    def hash_key(self) -> str:
        return self.key_schema[0]['AttributeName'] if self.key_schema else 'id'

    def _key_value(self, item: Dict[str, Any]) -> str:
        return item[self.hash_key]

    async def _request(self, operation: str, kwargs: Dict[str, Any], abort_signal=None) -> None:
        self.calls.append((operation, kwargs))

        async def respond():
            if self.latency:
                await asyncio.sleep(self.latency)
            else:
                await asyncio.sleep(0)
            failure = self.failures.pop(operation, None)
            if failure is not None:
                raise failure

        await run_abortable(respond(), abort_signal)

    def _check_condition(
        self,
        existing: Optional[Dict[str, Any]],
        condition_expression: Optional[str],
        names: Optional[Dict[str, str]],
        values: Optional[Dict[str, Any]],
        resource_id: Optional[str]
    ) -> None:
        if condition_expression is None:
            return
        names = names or {}
        values = values or {}
        match = re.fullmatch(r'attribute_not_exists\((#\w+)\)', condition_expression)
        if match:
            ok = existing is None or names[match.group(1)] not in existing
        else:
            match = re.fullmatch(r'(#\w+) = (:\w+)', condition_expression)
            if not match:
                raise NotImplementedError(condition_expression)
            ok = existing is not None and existing.get(names[match.group(1)]) == to_stored(values[match.group(2)])
        if not ok:
            raise conditional_check_failed(resource_id)

    # -------------------------------------------------------------------------
    # Table lifecycle
    # -------------------------------------------------------------------------

    async def create_table(self, attribute_definitions, key_schema, global_secondary_indexes=None,
                           billing_mode='PAY_PER_REQUEST') -> bool:
        await self._request('create_table', {
            'attribute_definitions': attribute_definitions,
            'key_schema': key_schema,
            'global_secondary_indexes': global_secondary_indexes,
        })
        if self.exists:
            return False
        self.exists = True
        self.key_schema = key_schema
        self.attribute_definitions = list(attribute_definitions)
        for description in global_secondary_indexes or []:
            self.indexes[description['IndexName']] = copy.deepcopy(description)
        return True

    async def describe_table(self) -> Dict[str, Any]:
        await self._request('describe_table', {})
        if not self.exists:
            raise NotFoundError(f"Resource not found - DescribeTable on {self.table_name}", 'table', self.table_name)
        status = self.table_statuses.popleft() if self.table_statuses else 'ACTIVE'
        indexes = []
        for name, description in self.indexes.items():
            statuses = self.index_statuses.get(name)
            index_status = statuses.popleft() if statuses else 'ACTIVE'
            indexes.append({**copy.deepcopy(description), 'IndexStatus': index_status})
        description = {
            'TableName': self.table_name,
            'TableStatus': status,
            'KeySchema': self.key_schema,
        }
        if indexes:
            description['GlobalSecondaryIndexes'] = indexes
        return description

    async def update_table(self, attribute_definitions, global_secondary_index_updates) -> Dict[str, Any]:
        await self._request('update_table', {
            'attribute_definitions': attribute_definitions,
            'global_secondary_index_updates': global_secondary_index_updates,
        })
        for update in global_secondary_index_updates:
            create = update['Create']
            self.indexes[create['IndexName']] = copy.deepcopy(create)
        return {}

    async def delete_table(self) -> None:
        await self._request('delete_table', {})
        self.exists = False
        self.indexes.clear()
        self.items.clear()

    # -------------------------------------------------------------------------
    # Item operations
    # -------------------------------------------------------------------------

    async def put_item(self, item, condition_expression=None, expression_attribute_names=None,
                       expression_attribute_values=None, abort_signal=None, resource_id=None) -> None:
        await self._request('put_item', {
            'item': copy.deepcopy(item),
            'condition_expression': condition_expression,
            'expression_attribute_names': expression_attribute_names,
            'expression_attribute_values': expression_attribute_values,
        }, abort_signal)
        stored = to_stored(copy.deepcopy(item))
        key = self._key_value(item)
        self._check_condition(
            self.items.get(key), condition_expression,
            expression_attribute_names, expression_attribute_values, resource_id
        )
        self.items[key] = stored

    async def get_item(self, key, consistent_read=False, abort_signal=None) -> Optional[Dict[str, Any]]:
        await self._request('get_item', {'key': key, 'consistent_read': consistent_read}, abort_signal)
        item = self.items.get(key[self.hash_key])
        return copy.deepcopy(item) if item is not None else None

    async def batch_get_item(self, keys, consistent_read=False, abort_signal=None):
        await self._request('batch_get_item', {'keys': list(keys), 'consistent_read': consistent_read}, abort_signal)
        if len(keys) > 100:
            raise AssertionError(f"BatchGetItem called with {len(keys)} keys")
        key_values = [key[self.hash_key] for key in keys]
        if len(set(key_values)) != len(key_values):
            raise AssertionError("BatchGetItem called with duplicate keys")
        unprocessed_count = self.unprocessed_script.popleft() if self.unprocessed_script else 0
        split = len(keys) - min(unprocessed_count, len(keys))
        processed, unprocessed = keys[:split], keys[split:]
        items = [
            copy.deepcopy(self.items[key[self.hash_key]])
            for key in processed if key[self.hash_key] in self.items
        ]
        return items, list(unprocessed)

    async def delete_item(self, key, condition_expression=None, expression_attribute_names=None,
                          expression_attribute_values=None, abort_signal=None, resource_id=None) -> None:
        await self._request('delete_item', {
            'key': key,
            'condition_expression': condition_expression,
            'expression_attribute_names': expression_attribute_names,
            'expression_attribute_values': expression_attribute_values,
        }, abort_signal)
        key_value = key[self.hash_key]
        self._check_condition(
            self.items.get(key_value), condition_expression,
            expression_attribute_names, expression_attribute_values, resource_id
        )
        self.items.pop(key_value, None)

    async def query(self, abort_signal=None, **kwargs) -> Dict[str, Any]:
        kwargs.pop('TableName', None)
        await self._request('query', copy.deepcopy(kwargs), abort_signal)
        if kwargs.get('FilterExpression'):
            raise NotImplementedError('FilterExpression')

        index = self.indexes[kwargs['IndexName']]
        index_keys = [k['AttributeName'] for k in index['KeySchema']]
        sort_key = index_keys[1] if len(index_keys) > 1 else None
        names = kwargs.get('ExpressionAttributeNames', {})
        values = {k: to_stored(v) for k, v in kwargs.get('ExpressionAttributeValues', {}).items()}

        conditions = []
        for match in KEY_CONDITION.finditer(kwargs['KeyConditionExpression']):
            if match.group('between'):
                conditions.append((names[match.group('bn')], 'between', [values[match.group('bv0')], values[match.group('bv1')]]))
            elif match.group('begins'):
                conditions.append((names[match.group('sn')], 'begins', [values[match.group('sv')]]))
            else:
                conditions.append((names[match.group('cn')], match.group('op'), [values[match.group('cv')]]))

        def matches(item):
            for name, op, operands in conditions:
                if name not in item:
                    return False
                value = item[name]
                if op == '=' and not value == operands[0]:
                    return False
                if op == '<' and not value < operands[0]:
                    return False
                if op == '<=' and not value <= operands[0]:
                    return False
                if op == '>' and not value > operands[0]:
                    return False
                if op == '>=' and not value >= operands[0]:
                    return False
                if op == 'between' and not operands[0] <= value <= operands[1]:
                    return False
                if op == 'begins' and not str(value).startswith(operands[0]):
                    return False
            return True

        def position(item):
            return (item.get(sort_key) if sort_key else 0, item[self.hash_key])

        # sparse index: only items carrying every index key attribute
        candidates = [item for item in self.items.values() if all(k in item for k in index_keys) and matches(item)]
        forward = kwargs.get('ScanIndexForward', True)
        candidates.sort(key=position, reverse=not forward)

        start_key = kwargs.get('ExclusiveStartKey')
        if start_key:
            start = position({k: to_stored(v) for k, v in start_key.items()})
            candidates = [item for item in candidates if (position(item) > start if forward else position(item) < start)]

        page_size = kwargs.get('Limit')
        if self.max_page_size is not None:
            page_size = min(page_size or self.max_page_size, self.max_page_size)
        page = candidates if page_size is None else candidates[:page_size]

        response: Dict[str, Any] = {'Items': [self._project(item, index, index_keys) for item in page]}
        limit_reached = kwargs.get('Limit') is not None and len(page) == kwargs['Limit']
        if page and (limit_reached or len(page) < len(candidates)):
            last = page[-1]
            response['LastEvaluatedKey'] = {k: last[k] for k in [self.hash_key, *index_keys]}
        return response

    def _project(self, item: Dict[str, Any], index: Dict[str, Any], index_keys: List[str]) -> Dict[str, Any]:
        projection = index.get('Projection', {'ProjectionType': 'KEYS_ONLY'})
        if projection['ProjectionType'] == 'ALL':
            return copy.deepcopy(item)
        attributes = {self.hash_key, *index_keys}
        if projection['ProjectionType'] == 'INCLUDE':
            attributes.update(projection.get('NonKeyAttributes', []))
        return {k: copy.deepcopy(v) for k, v in item.items() if k in attributes}

    def close(self) -> None:
        self.closed = True

"""
Tests for simplified query parsing (query/conditions.py)
"""

import pytest

from dynamodm import UnsupportedQueryError
from dynamodm.query.conditions import Condition, QueryEntry, parse_query_entries


class TestParseQueryEntries:
    """Test the mongo-like query grammar."""

    def test_literal_values_are_equality(self):
        entries = parse_query_entries({'user': 'u1', 'score': 3})

        assert entries == [
            QueryEntry(key='user', values=['u1']),
            QueryEntry(key='score', values=[3]),
        ]
        assert all(entry.is_equality for entry in entries)

    @pytest.mark.parametrize('operator,condition', [
        ('$eq', Condition.EQUAL),
        ('$gt', Condition.GT),
        ('$gte', Condition.GTE),
        ('$lt', Condition.LT),
        ('$lte', Condition.LTE),
        ('$begins', Condition.BEGINS),
    ])
    def test_single_value_conditions(self, operator, condition):
        [entry] = parse_query_entries({'tag': {operator: 'py'}})

        assert entry.condition is condition
        assert entry.values == ['py']

    def test_between(self):
        [entry] = parse_query_entries({'score': {'$between': [1, 10]}})

        assert entry.condition is Condition.BETWEEN
        assert entry.values == [1, 10]

    def test_between_requires_two_values(self):
        with pytest.raises(UnsupportedQueryError, match='requires an array of 2 values'):
            parse_query_entries({'score': {'$between': [1]}})

        with pytest.raises(UnsupportedQueryError, match='requires an array of 2 values'):
            parse_query_entries({'score': {'$between': 1}})

    def test_dict_without_conditions_is_a_literal(self):
        [entry] = parse_query_entries({'meta': {'a': 1}})

        assert entry.is_equality
        assert entry.values == [{'a': 1}]

    def test_multiple_conditions_rejected(self):
        with pytest.raises(UnsupportedQueryError, match='Only a single'):
            parse_query_entries({'score': {'$gt': 1, '$lt': 5}})

    def test_unknown_condition(self):
        with pytest.raises(UnsupportedQueryError, match='Condition "\\$ne" is not supported'):
            parse_query_entries({'score': {'$ne': 1}})

    def test_query_must_be_dict(self):
        with pytest.raises(UnsupportedQueryError, match='Queries must be dicts'):
            parse_query_entries([('user', 'u1')])

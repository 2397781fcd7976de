"""
Test configuration and fixtures for dynamodm.

Unit tests run models and tables against the in-memory FakeTableGateway
from tests.helpers; integration tests use the boto3 gateway against moto.
"""

import sys
from pathlib import Path

# Add parent directory to path so we can import dynamodm and tests.helpers
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from dynamodm import (
    CreatedAtField,
    DynamoDMConfig,
    Schema,
    Table,
    Timestamp,
    UpdatedAtField,
)
from tests.helpers import FakeTableGateway


@pytest.fixture
def config():
    """dynamodm configuration for testing (no polling delay)."""
    return DynamoDMConfig(
        aws_access_key_id="test_key",
        aws_secret_access_key="test_secret",
        region_name="us-east-1",
        endpoint_url=None,
        table_prefix="",
        poll_interval_seconds=0
    )


@pytest.fixture
def gateway():
    """In-memory table gateway."""
    return FakeTableGateway()


@pytest.fixture
def table(config, gateway):
    """Table backed by the in-memory gateway."""
    return Table('test-table', config=config, gateway=gateway)


@pytest.fixture
def comment_schema():
    """Comment schema with a user/time index, timestamps and a default."""
    return Schema('comment', {
        'properties': {
            'text': {'type': 'string'},
            'user': {'type': 'string'},
            'score': {'type': 'number', 'default': 0},
            'postedAt': Timestamp,
            'created': CreatedAtField,
            'updated': UpdatedAtField,
            'tags': {'type': 'array', 'items': {'type': 'string'}},
        },
        'required': ['text']
    }, index={
        'byUser': {'hashKey': 'user', 'sortKey': 'created'},
        'user': True,
    })


@pytest.fixture
def user_schema():
    """User schema with a unique-ish email index projecting all attributes."""
    return Schema('user', {
        'properties': {
            'email': {'type': 'string'},
            'name': {'type': 'string'},
            'age': {'type': 'integer'},
        },
        'required': ['email']
    }, index={
        'email': {'hashKey': 'email', 'project': 'all'},
    })


@pytest.fixture
def Comment(table, comment_schema):
    """Comment model on the test table."""
    return table.model(comment_schema)


@pytest.fixture
def User(table, user_schema):
    """User model on the test table."""
    return table.model(user_schema)

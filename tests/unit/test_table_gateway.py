"""
Tests for TableGateway (core/table_gateway.py)

These tests verify the thin async wrapper over the boto3 Table resource:
request shapes, executor dispatch, abort handling and error mapping.
"""

import asyncio
import threading

import pytest
from unittest.mock import Mock, patch
from botocore.exceptions import ClientError

from dynamodm import AbortController, AbortError
from dynamodm.config import DynamoDMConfig
from dynamodm.core.table_gateway import TableGateway, create_table_gateway, map_dynamodb_error
from dynamodm.exceptions import (
    ConflictError,
    ConnectionError,
    NotFoundError,
    RetryableError,
    ValidationError,
)


def create_client_error(error_code: str, message: str = "Test error") -> ClientError:
    """Helper to create ClientError for testing."""
    return ClientError(
        error_response={'Error': {'Code': error_code, 'Message': message}},
        operation_name='TestOperation'
    )


def make_config(**overrides) -> DynamoDMConfig:
    values = dict(
        region_name="us-east-1",
        table_prefix="test",
        aws_access_key_id="fake_key",
        aws_secret_access_key="fake_secret",
        endpoint_url=None
    )
    values.update(overrides)
    return DynamoDMConfig(**values)


@pytest.fixture
def mock_config():
    """Configuration for testing."""
    return make_config()


@pytest.fixture
def mock_table():
    """Mock DynamoDB Table resource."""
    table = Mock()
    table.query.return_value = {'Items': []}
    table.put_item.return_value = {}
    table.get_item.return_value = {}
    table.delete_item.return_value = {}
    return table


@pytest.fixture
def gateway(mock_config, mock_table):
    """Gateway wired to mock boto3 resources."""
    gateway = TableGateway(mock_config, "test_comments")
    gateway._dynamodb = Mock()
    gateway._dynamodb.Table.return_value = mock_table
    gateway._table = mock_table
    return gateway


class TestResources:
    """Test lazy boto3 resource creation."""

    def test_initialization(self, mock_config):
        """Test TableGateway initialization."""
        gateway = TableGateway(mock_config, "test_table")

        assert gateway.config == mock_config
        assert gateway.table_name == "test_table"
        assert gateway._dynamodb is None
        assert gateway._table is None

    def test_dynamodb_property_lazy_initialization(self, mock_config):
        """Test lazy initialization of the DynamoDB resource."""
        with patch('boto3.Session') as mock_session_class:
            mock_session = Mock()
            mock_dynamodb = Mock()
            mock_session_class.return_value = mock_session
            mock_session.resource.return_value = mock_dynamodb

            gateway = TableGateway(mock_config, "test_table")

            assert gateway.dynamodb == mock_dynamodb
            assert gateway.dynamodb == mock_dynamodb
            mock_session_class.assert_called_once_with(
                aws_access_key_id="fake_key",
                aws_secret_access_key="fake_secret",
                region_name="us-east-1"
            )
            mock_session.resource.assert_called_once()
            kwargs = mock_session.resource.call_args.kwargs
            assert kwargs['region_name'] == "us-east-1"
            assert 'endpoint_url' not in kwargs

    def test_endpoint_url(self):
        """Test that a configured endpoint is passed to boto3."""
        config = make_config(endpoint_url="http://localhost:8000")
        with patch('boto3.Session') as mock_session_class:
            gateway = TableGateway(config, "test_table")
            _ = gateway.dynamodb

            kwargs = mock_session_class.return_value.resource.call_args.kwargs
            assert kwargs['endpoint_url'] == "http://localhost:8000"

    def test_dynamodb_connection_error(self, mock_config):
        """Test DynamoDB connection error handling."""
        with patch('boto3.Session') as mock_session_class:
            mock_session_class.side_effect = Exception("Connection failed")

            gateway = TableGateway(mock_config, "test_table")

            with pytest.raises(ConnectionError, match="Failed to connect to DynamoDB"):
                _ = gateway.dynamodb

    def test_table_property(self, mock_config):
        """Test lazy initialization of the Table resource."""
        with patch('boto3.Session') as mock_session_class:
            mock_dynamodb = mock_session_class.return_value.resource.return_value

            gateway = TableGateway(mock_config, "test_table")

            assert gateway.table == mock_dynamodb.Table.return_value
            mock_dynamodb.Table.assert_called_once_with("test_table")

    def test_create_table_gateway_applies_prefix(self, mock_config):
        """Test that the factory applies the configured table prefix."""
        gateway = create_table_gateway(mock_config, "comments")

        assert gateway.table_name == "test_comments"

    def test_close(self, gateway):
        """Test closing releases the resources."""
        client = gateway._dynamodb.meta.client

        gateway.close()

        client.close.assert_called_once_with()
        assert gateway._dynamodb is None
        assert gateway._table is None


class TestItemOperations:
    """Test item request shapes."""

    @pytest.mark.asyncio
    async def test_put_item_with_condition(self, gateway, mock_table):
        await gateway.put_item(
            {'id': 'comment.1', 'v': 2},
            condition_expression='#v = :v',
            expression_attribute_names={'#v': 'v'},
            expression_attribute_values={':v': 1}
        )

        mock_table.put_item.assert_called_once_with(
            Item={'id': 'comment.1', 'v': 2},
            ConditionExpression='#v = :v',
            ExpressionAttributeNames={'#v': 'v'},
            ExpressionAttributeValues={':v': 1}
        )

    @pytest.mark.asyncio
    async def test_put_item_without_condition(self, gateway, mock_table):
        await gateway.put_item({'id': 'comment.1'})

        mock_table.put_item.assert_called_once_with(Item={'id': 'comment.1'})

    @pytest.mark.asyncio
    async def test_get_item(self, gateway, mock_table):
        mock_table.get_item.return_value = {'Item': {'id': 'comment.1'}}

        assert await gateway.get_item({'id': 'comment.1'}, consistent_read=True) == {'id': 'comment.1'}
        mock_table.get_item.assert_called_once_with(Key={'id': 'comment.1'}, ConsistentRead=True)

    @pytest.mark.asyncio
    async def test_get_item_missing(self, gateway):
        assert await gateway.get_item({'id': 'comment.1'}) is None

    @pytest.mark.asyncio
    async def test_batch_get_item(self, gateway):
        gateway._dynamodb.batch_get_item.return_value = {
            'Responses': {'test_comments': [{'id': 'a'}]},
            'UnprocessedKeys': {'test_comments': {'Keys': [{'id': 'b'}]}},
        }

        items, unprocessed = await gateway.batch_get_item([{'id': 'a'}, {'id': 'b'}])

        assert items == [{'id': 'a'}]
        assert unprocessed == [{'id': 'b'}]
        gateway._dynamodb.batch_get_item.assert_called_once_with(
            RequestItems={'test_comments': {'Keys': [{'id': 'a'}, {'id': 'b'}]}}
        )

    @pytest.mark.asyncio
    async def test_batch_get_item_consistent(self, gateway):
        gateway._dynamodb.batch_get_item.return_value = {}

        items, unprocessed = await gateway.batch_get_item([{'id': 'a'}], consistent_read=True)

        assert (items, unprocessed) == ([], [])
        request = gateway._dynamodb.batch_get_item.call_args.kwargs['RequestItems']['test_comments']
        assert request['ConsistentRead'] is True

    @pytest.mark.asyncio
    async def test_delete_item(self, gateway, mock_table):
        await gateway.delete_item(
            {'id': 'comment.1'},
            condition_expression='attribute_not_exists(#v)',
            expression_attribute_names={'#v': 'v'}
        )

        mock_table.delete_item.assert_called_once_with(
            Key={'id': 'comment.1'},
            ConditionExpression='attribute_not_exists(#v)',
            ExpressionAttributeNames={'#v': 'v'}
        )

    @pytest.mark.asyncio
    async def test_query_ignores_table_name(self, gateway, mock_table):
        await gateway.query(TableName='other', IndexName='byUser', Limit=5)

        mock_table.query.assert_called_once_with(IndexName='byUser', Limit=5)

    @pytest.mark.asyncio
    async def test_runs_in_executor(self, gateway, mock_table):
        """boto3 calls block, so they run off the event loop thread."""
        threads = []
        mock_table.query.side_effect = lambda **kwargs: threads.append(threading.get_ident()) or {'Items': []}

        await gateway.query(IndexName='byUser')

        assert threads and threads[0] != threading.get_ident()


class TestTableOperations:
    """Test table lifecycle requests."""

    @pytest.mark.asyncio
    async def test_create_table(self, gateway):
        client = gateway._dynamodb.meta.client
        client.create_table.return_value = {}

        created = await gateway.create_table(
            attribute_definitions=[{'AttributeName': 'id', 'AttributeType': 'S'}],
            key_schema=[{'AttributeName': 'id', 'KeyType': 'HASH'}]
        )

        assert created is True
        kwargs = client.create_table.call_args.kwargs
        assert kwargs['TableName'] == 'test_comments'
        assert kwargs['BillingMode'] == 'PAY_PER_REQUEST'
        assert 'GlobalSecondaryIndexes' not in kwargs

    @pytest.mark.asyncio
    async def test_create_existing_table(self, gateway):
        gateway._dynamodb.meta.client.create_table.side_effect = create_client_error('ResourceInUseException')

        created = await gateway.create_table(attribute_definitions=[], key_schema=[])

        assert created is False

    @pytest.mark.asyncio
    async def test_describe_table(self, gateway):
        gateway._dynamodb.meta.client.describe_table.return_value = {'Table': {'TableStatus': 'ACTIVE'}}

        assert await gateway.describe_table() == {'TableStatus': 'ACTIVE'}

    @pytest.mark.asyncio
    async def test_update_table(self, gateway):
        client = gateway._dynamodb.meta.client
        client.update_table.return_value = {'TableDescription': {'TableStatus': 'UPDATING'}}
        updates = [{'Create': {'IndexName': 'byUser'}}]

        result = await gateway.update_table([{'AttributeName': 'user', 'AttributeType': 'S'}], updates)

        assert result == {'TableStatus': 'UPDATING'}
        client.update_table.assert_called_once_with(
            TableName='test_comments',
            AttributeDefinitions=[{'AttributeName': 'user', 'AttributeType': 'S'}],
            GlobalSecondaryIndexUpdates=updates
        )

    @pytest.mark.asyncio
    async def test_delete_table(self, gateway):
        await gateway.delete_table()

        gateway._dynamodb.meta.client.delete_table.assert_called_once_with(TableName='test_comments')


class TestErrorsAndAbort:
    """Test error mapping and abort handling of requests."""

    @pytest.mark.asyncio
    async def test_conditional_check_failure(self, gateway, mock_table):
        mock_table.put_item.side_effect = create_client_error(
            'ConditionalCheckFailedException', 'The conditional request failed'
        )

        with pytest.raises(ConflictError) as exc_info:
            await gateway.put_item({'id': 'comment.1'}, resource_id='comment.1')

        assert exc_info.value.context['error_code'] == 'ConditionalCheckFailedException'
        assert 'comment.1' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_table(self, gateway):
        gateway._dynamodb.meta.client.describe_table.side_effect = create_client_error('ResourceNotFoundException')

        with pytest.raises(NotFoundError):
            await gateway.describe_table()

    @pytest.mark.asyncio
    async def test_already_aborted(self, gateway, mock_table):
        controller = AbortController()
        controller.abort('stop')

        with pytest.raises(AbortError):
            await gateway.query(abort_signal=controller.signal, IndexName='byUser')

        mock_table.query.assert_not_called()

    @pytest.mark.asyncio
    async def test_abort_in_flight(self, gateway, mock_table):
        release = threading.Event()
        mock_table.query.side_effect = lambda **kwargs: release.wait(1) and {'Items': []}
        controller = AbortController()

        task = asyncio.ensure_future(gateway.query(abort_signal=controller.signal, IndexName='byUser'))
        await asyncio.sleep(0.01)
        controller.abort()

        try:
            with pytest.raises(AbortError):
                await task
        finally:
            release.set()


class TestErrorMapping:
    """Test mapping of botocore errors to dynamodm exceptions."""

    @pytest.mark.parametrize('code,expected', [
        ('ConditionalCheckFailedException', ConflictError),
        ('TransactionConflictException', ConflictError),
        ('ResourceInUseException', ConflictError),
        ('ResourceNotFoundException', NotFoundError),
        ('ValidationException', ValidationError),
        ('ProvisionedThroughputExceededException', RetryableError),
        ('ThrottlingException', RetryableError),
        ('InternalServerError', RetryableError),
        ('AccessDeniedException', ConnectionError),
        ('SomethingNew', ConnectionError),
    ])
    def test_mapping(self, code, expected):
        error = create_client_error(code, 'Something happened')

        result = map_dynamodb_error(error, 'PutItem', 'test_table', 'comment.1')

        assert isinstance(result, expected)
        assert result.context['error_code'] == code
        assert result.original_error is error
        assert 'PutItem on test_table' in str(result)

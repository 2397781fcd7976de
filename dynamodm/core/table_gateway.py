"""
Asynchronous DynamoDB Table Gateway

This module provides the storage collaborator used by tables and models: a
thin wrapper around the boto3 DynamoDB resource that exposes exactly the
operations the document mapper needs:

1. Table lifecycle: create, describe, update (add one index), delete
2. Item operations: put, get, batch-get, delete (with condition expressions)
3. Index queries with continuation tokens

boto3 calls block, so every request is run in the event loop's default
executor. The gateway is the only suspension point for storage I/O, which
makes it the natural place to honour abort signals and to map botocore
ClientErrors into dynamodm's exception hierarchy.

Design Philosophy:
- Requests and responses keep DynamoDB's native shapes (Key, Item,
  ExclusiveStartKey, LastEvaluatedKey ...); translation from the simplified
  query API happens in dynamodm.query
- Conditional expressions are passed as strings with explicit
  ExpressionAttributeNames/Values, matching the placeholders built by the
  planner
"""

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ..config import DynamoDMConfig
from ..exceptions import (
    ConflictError,
    ConnectionError,
    NotFoundError,
    RetryableError,
    ValidationError,
)
from .abort import AbortSignal, run_abortable

logger = logging.getLogger(__name__)


def map_dynamodb_error(
    error: ClientError,
    operation: str,
    table_name: str,
    resource_id: Optional[str] = None
) -> Exception:
    """Map DynamoDB ClientError to domain-specific exceptions.

    This function provides consistent error mapping across all DynamoDB operations,
    converting boto3 ClientErrors into meaningful domain exceptions. The AWS error
    code is kept in the mapped exception's context under 'error_code'.

    Args:
        error: The boto3 ClientError
        operation: The operation that failed (e.g., "GetItem", "PutItem")
        table_name: The DynamoDB table name
        resource_id: Optional resource identifier for context

    Returns:
        Appropriate domain exception
    """
    error_code = error.response.get('Error', {}).get('Code', 'Unknown')
    error_message = error.response.get('Error', {}).get('Message', str(error))

    # Build context for error message
    context = f"{operation} on {table_name}"
    if resource_id:
        context += f" (resource: {resource_id})"

    full_message = f"{context}: {error_message}"

    # Map specific DynamoDB errors to domain exceptions
    if error_code == 'ConditionalCheckFailedException':
        mapped = ConflictError(f"Conditional check failed - {full_message}", resource_id, original_error=error)

    elif error_code == 'ResourceNotFoundException':
        mapped = NotFoundError(f"Resource not found - {full_message}", 'table', table_name, original_error=error)

    elif error_code == 'ResourceInUseException':
        mapped = ConflictError(f"Resource in use - {full_message}", resource_id, original_error=error)

    elif error_code == 'ValidationException':
        mapped = ValidationError(f"Validation failed - {full_message}", original_error=error)

    elif error_code == 'LimitExceededException':
        mapped = ValidationError(f"DynamoDB limit exceeded - {full_message}", original_error=error)

    elif error_code == 'ItemCollectionSizeLimitExceededException':
        mapped = ValidationError(f"Item collection size limit exceeded - {full_message}", original_error=error)

    elif error_code == 'TransactionConflictException':
        mapped = ConflictError(f"Transaction conflict - {full_message}", resource_id, original_error=error)

    elif error_code in ['ProvisionedThroughputExceededException', 'RequestLimitExceeded']:
        mapped = RetryableError(f"Throttling - {full_message}", original_error=error)

    elif error_code in [
        'ThrottlingException', 'SlowDown', 'BandwidthLimitExceeded',
        'RequestThrottledException', 'TooManyRequestsException'
    ]:
        mapped = RetryableError(f"Throttling/rate limiting - {full_message}", original_error=error)

    elif error_code in [
        'InternalServerError', 'ServiceUnavailable', 'ServiceUnavailableException',
        'InternalFailure', 'ServiceException'
    ]:
        mapped = RetryableError(f"Service unavailable - {full_message}", original_error=error)

    elif error_code in ['RequestTimeoutException', 'RequestExpiredException']:
        mapped = RetryableError(f"Request timeout - {full_message}", original_error=error)

    elif error_code in ['UnrecognizedClientException', 'AccessDeniedException']:
        mapped = ConnectionError(f"Authentication/authorization failed - {full_message}", original_error=error)

    elif error_code in ['ExpiredTokenException', 'TokenRefreshRequiredException']:
        mapped = ConnectionError(f"Token expired - {full_message}", original_error=error)

    elif error_code in ['InvalidEndpointException', 'IncompleteSignatureException', 'InvalidSignatureException']:
        mapped = ConnectionError(f"Invalid endpoint or signature - {full_message}", original_error=error)

    else:
        # Default to ConnectionError for unknown errors
        logger.warning(f"Unknown DynamoDB error code '{error_code}' mapped to ConnectionError")
        mapped = ConnectionError(f"DynamoDB operation failed - {full_message}", original_error=error)

    mapped.context['error_code'] = error_code
    return mapped


class TableGateway:
    """
    Asynchronous gateway for one DynamoDB table.

    Provides the minimal set of table and item operations used by the document
    mapper. Every item operation accepts an optional AbortSignal.

    Key principles:
    - Expose native DynamoDB request/response shapes
    - One suspension point per request, run in the default executor
    - Consistent error mapping to dynamodm exceptions
    """

    def __init__(self, config: DynamoDMConfig, table_name: str):
        """Initialize table gateway.

        Args:
            config: dynamodm configuration
            table_name: Name of the DynamoDB table
        """
        self.config = config
        self.table_name = table_name
        self._dynamodb = None
        self._table = None

    @property
    def dynamodb(self):
        """Lazy initialization of DynamoDB resource."""
        if self._dynamodb is None:
            try:
                session = boto3.Session(
                    aws_access_key_id=self.config.aws_access_key_id,
                    aws_secret_access_key=self.config.aws_secret_access_key,
                    region_name=self.config.region_name
                )

                # Configure connection parameters
                dynamodb_config = {
                    'region_name': self.config.region_name
                }

                if self.config.endpoint_url:
                    dynamodb_config['endpoint_url'] = self.config.endpoint_url

                # Add retry and timeout configuration
                boto_config = Config(
                    retries={'max_attempts': self.config.retries},
                    max_pool_connections=self.config.max_pool_connections,
                    read_timeout=self.config.timeout_seconds,
                    connect_timeout=self.config.timeout_seconds
                )
                dynamodb_config['config'] = boto_config

                self._dynamodb = session.resource('dynamodb', **dynamodb_config)
            except Exception as e:
                logger.error(f"Failed to create DynamoDB resource: {e}")
                raise ConnectionError(f"Failed to connect to DynamoDB: {e}", e) from e
        return self._dynamodb

    @property
    def table(self):
        """
        Get boto3 DynamoDB Table resource.

        Item operations go through the Table resource, which converts between
        Python values and DynamoDB's typed attribute values.
        """
        if self._table is None:
            try:
                self._table = self.dynamodb.Table(self.table_name)
            except Exception as e:
                logger.error(f"Failed to access table '{self.table_name}': {e}")
                raise ConnectionError(f"Failed to access table '{self.table_name}': {e}", e) from e
        return self._table

    @property
    def client(self):
        """Low-level client used for table lifecycle operations."""
        return self.dynamodb.meta.client

    async def _send(
        self,
        operation: str,
        call: Callable[..., Dict[str, Any]],
        abort_signal: Optional[AbortSignal] = None,
        resource_id: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """Run one boto3 call in the default executor, honouring abort_signal."""

        async def in_executor():
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, functools.partial(call, **kwargs))

        logger.debug(f"{operation} on {self.table_name}: {kwargs}")
        try:
            response = await run_abortable(in_executor(), abort_signal)
        except ClientError as e:
            raise map_dynamodb_error(e, operation, self.table_name, resource_id) from e
        logger.debug(f"{operation} on {self.table_name} response: {response}")
        return response

    # -------------------------------------------------------------------------
    # Table lifecycle
    # -------------------------------------------------------------------------

    async def create_table(
        self,
        attribute_definitions: List[Dict[str, str]],
        key_schema: List[Dict[str, str]],
        global_secondary_indexes: Optional[List[Dict[str, Any]]] = None,
        billing_mode: str = 'PAY_PER_REQUEST'
    ) -> bool:
        """
        Create the table.

        Args:
            attribute_definitions: AttributeDefinitions for the key and index attributes
            key_schema: Table KeySchema
            global_secondary_indexes: Optional GlobalSecondaryIndexes descriptions
            billing_mode: Table billing mode

        Returns:
            True if the table was created, False if it already existed
        """
        create_kwargs = {
            'TableName': self.table_name,
            'AttributeDefinitions': attribute_definitions,
            'KeySchema': key_schema,
            'BillingMode': billing_mode,
        }
        if global_secondary_indexes:
            create_kwargs['GlobalSecondaryIndexes'] = global_secondary_indexes
        try:
            await self._send("CreateTable", self.client.create_table, **create_kwargs)
        except ConflictError as e:
            # ResourceInUseException is only raised if the table already exists
            if e.context.get('error_code') == 'ResourceInUseException':
                return False
            raise
        logger.info(f"Created table {self.table_name}")
        return True

    async def describe_table(self) -> Dict[str, Any]:
        """Return the 'Table' description of DescribeTable."""
        response = await self._send("DescribeTable", self.client.describe_table, TableName=self.table_name)
        return response['Table']

    async def update_table(
        self,
        attribute_definitions: List[Dict[str, str]],
        global_secondary_index_updates: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Apply GlobalSecondaryIndexUpdates (DynamoDB allows one index creation at a time)."""
        response = await self._send(
            "UpdateTable",
            self.client.update_table,
            TableName=self.table_name,
            AttributeDefinitions=attribute_definitions,
            GlobalSecondaryIndexUpdates=global_secondary_index_updates
        )
        return response.get('TableDescription', {})

    async def delete_table(self) -> None:
        """Delete the table."""
        await self._send("DeleteTable", self.client.delete_table, TableName=self.table_name)
        logger.info(f"Deleted table {self.table_name}")

    # -------------------------------------------------------------------------
    # Item operations
    # -------------------------------------------------------------------------

    async def put_item(
        self,
        item: Dict[str, Any],
        condition_expression: Optional[str] = None,
        expression_attribute_names: Optional[Dict[str, str]] = None,
        expression_attribute_values: Optional[Dict[str, Any]] = None,
        abort_signal: Optional[AbortSignal] = None,
        resource_id: Optional[str] = None
    ) -> None:
        """
        Put item into the table.

        Args:
            item: Item to store
            condition_expression: Optional condition for put operation
            expression_attribute_names: Names referenced by the condition
            expression_attribute_values: Values referenced by the condition
            abort_signal: Optional abort signal
            resource_id: Identifier used for error context

        Example:
            await gateway.put_item(
                item={'id': 'comment.01H...', 'type': 'comment', 'v': 1},
                condition_expression='attribute_not_exists(#id)',
                expression_attribute_names={'#id': 'id'}
            )
        """
        put_kwargs: Dict[str, Any] = {'Item': item}
        if condition_expression is not None:
            put_kwargs['ConditionExpression'] = condition_expression
        if expression_attribute_names:
            put_kwargs['ExpressionAttributeNames'] = expression_attribute_names
        if expression_attribute_values:
            put_kwargs['ExpressionAttributeValues'] = expression_attribute_values
        await self._send("PutItem", self.table.put_item, abort_signal, resource_id, **put_kwargs)

    async def get_item(
        self,
        key: Dict[str, Any],
        consistent_read: bool = False,
        abort_signal: Optional[AbortSignal] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Get one item by primary key.

        Returns:
            The stored item, or None if it does not exist
        """
        get_kwargs: Dict[str, Any] = {'Key': key}
        if consistent_read:
            get_kwargs['ConsistentRead'] = True
        response = await self._send("GetItem", self.table.get_item, abort_signal, **get_kwargs)
        return response.get('Item')

    async def batch_get_item(
        self,
        keys: List[Dict[str, Any]],
        consistent_read: bool = False,
        abort_signal: Optional[AbortSignal] = None
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """
        Get up to 100 items by primary key in a single BatchGetItem request.

        Returns:
            Tuple of (items, unprocessed_keys)
        """
        request: Dict[str, Any] = {'Keys': keys}
        if consistent_read:
            request['ConsistentRead'] = True
        response = await self._send(
            "BatchGetItem",
            self.dynamodb.batch_get_item,
            abort_signal,
            RequestItems={self.table_name: request}
        )
        items = response.get('Responses', {}).get(self.table_name, [])
        unprocessed = response.get('UnprocessedKeys', {}).get(self.table_name, {}).get('Keys', [])
        return items, unprocessed

    async def delete_item(
        self,
        key: Dict[str, Any],
        condition_expression: Optional[str] = None,
        expression_attribute_names: Optional[Dict[str, str]] = None,
        expression_attribute_values: Optional[Dict[str, Any]] = None,
        abort_signal: Optional[AbortSignal] = None,
        resource_id: Optional[str] = None
    ) -> None:
        """
        Delete item from the table.

        Args:
            key: Primary key of item to delete
            condition_expression: Optional condition for delete
            expression_attribute_names: Names referenced by the condition
            expression_attribute_values: Values referenced by the condition
            abort_signal: Optional abort signal
            resource_id: Identifier used for error context
        """
        delete_kwargs: Dict[str, Any] = {'Key': key}
        if condition_expression is not None:
            delete_kwargs['ConditionExpression'] = condition_expression
        if expression_attribute_names:
            delete_kwargs['ExpressionAttributeNames'] = expression_attribute_names
        if expression_attribute_values:
            delete_kwargs['ExpressionAttributeValues'] = expression_attribute_values
        await self._send("DeleteItem", self.table.delete_item, abort_signal, resource_id, **delete_kwargs)

    async def query(self, abort_signal: Optional[AbortSignal] = None, **kwargs) -> Dict[str, Any]:
        """
        Execute DynamoDB Query operation.

        Raw pass-through to boto3 with error handling. TableName is always this
        gateway's table.

        Args:
            abort_signal: Optional abort signal
            **kwargs: boto3 query parameters (IndexName, KeyConditionExpression,
                ExpressionAttributeNames/Values, Limit, ExclusiveStartKey, ...)

        Returns:
            Raw DynamoDB response with 'Items' and optionally 'LastEvaluatedKey'
        """
        kwargs.pop('TableName', None)
        return await self._send("Query", self.table.query, abort_signal, **kwargs)

    def close(self) -> None:
        """Close the underlying HTTP connections, if a resource was created."""
        if self._dynamodb is not None:
            self._dynamodb.meta.client.close()
        self._dynamodb = None
        self._table = None


def create_table_gateway(config: DynamoDMConfig, table_name: str) -> TableGateway:
    """
    Factory function to create a TableGateway instance.

    Args:
        config: dynamodm configuration
        table_name: Table name (the configured table prefix is applied)

    Returns:
        Configured TableGateway instance
    """
    full_table_name = config.get_table_name(table_name)
    return TableGateway(config, full_table_name)

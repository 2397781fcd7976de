"""
Domain-Specific Exceptions for dynamodm

This module consolidates all exceptions that extend the base DynamoDMError.
They follow the lifecycle of a table: configuration problems are raised while
schemas and models are being defined, consistency problems when a table is
readied, and the remaining errors are scoped to a single operation.

Organized by category:
1. Configuration and Consistency Errors
2. Data Validation and Query Errors
3. Conflict and Conditional Errors
4. Infrastructure, Retry and Cancellation Errors
"""

from typing import Any, Dict, List, Optional

from .base import DynamoDMError


# =============================================================================
# Configuration and Consistency Errors
# =============================================================================

class ConfigurationError(DynamoDMError):
    """Raised when a schema, index, model or table definition is malformed.

    Used for:
    - Invalid schema names or shapes
    - Duplicate special fields (id, type, version, timestamps)
    - Invalid index specifications and reserved index names
    - Invalid virtuals, converters, methods or statics
    - Registering schemas on a table that is already ready
    """


class ConsistencyError(DynamoDMError):
    """Raised when the schemas registered on one table cannot share it.

    Used for:
    - Schemas with different id or type field names
    - Schemas sharing a name (unless aliasing is allowed)
    - Incompatible attribute types or index definitions across schemas
    - An existing table whose key schema does not match the id field
    """


# =============================================================================
# Data Validation and Query Errors
# =============================================================================

class ValidationError(DynamoDMError):
    """Raised when data validation fails.

    Used for:
    - Documents that do not match their schema (construct, save, load)
    - Query values that do not match the schema of the queried field
    - Invalid API options and arguments
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None, original_error: Optional[Exception] = None):
        """Initialize validation error.

        Args:
            message: Human-readable error message
            errors: List of {'path': ..., 'message': ...} validation errors
            original_error: The original exception that caused this error
        """
        self.errors = errors or []
        super().__init__(message, original_error)


class UnsupportedQueryError(DynamoDMError):
    """Raised when a simplified query cannot be translated to an index query."""

    def __init__(self, message: str, query: Optional[Dict[str, Any]] = None):
        self.query = query
        super().__init__(message)


class PartialDocumentError(DynamoDMError):
    """Raised when a document built from index-projected data is saved or removed."""


# =============================================================================
# Resource Not Found Errors
# =============================================================================

class NotFoundError(DynamoDMError):
    """Raised when a DynamoDB resource (table, index) is not found.

    Used for:
    - Table or index not found errors
    - Infrastructure-level not found errors
    """

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_name: Optional[str] = None, original_error: Optional[Exception] = None):
        """Initialize not found error.

        Args:
            message: Human-readable error message
            resource_type: Type of resource not found (e.g., 'table', 'index')
            resource_name: Name of the resource not found
            original_error: The original exception that caused this error
        """
        self.resource_type = resource_type
        self.resource_name = resource_name
        context = {}
        if resource_type:
            context['resource_type'] = resource_type
        if resource_name:
            context['resource_name'] = resource_name
        super().__init__(message, original_error, context)


# =============================================================================
# Conflict and Conditional Errors
# =============================================================================

class ConflictError(DynamoDMError):
    """Raised when a conditional operation fails due to existing data.

    Used for:
    - ConditionalCheckFailedException from DynamoDB
    - Race conditions in concurrent updates
    - Optimistic locking failures
    """

    def __init__(self, message: str, resource_id: Optional[str] = None, original_error: Optional[Exception] = None):
        """Initialize conflict error.

        Args:
            message: Human-readable error message
            resource_id: ID of the conflicting resource
            original_error: The original exception that caused this error
        """
        self.resource_id = resource_id
        context = {}
        if resource_id:
            context['resource_id'] = resource_id
        super().__init__(message, original_error, context)


class DuplicateIdError(ConflictError):
    """Raised when saving a new document whose id is already stored."""


class VersionConflictError(ConflictError):
    """Raised when a document was changed by another writer since it was loaded."""


# =============================================================================
# Infrastructure, Retry and Cancellation Errors
# =============================================================================

class ConnectionError(DynamoDMError):  # noqa: A001
    """Raised when connection to DynamoDB fails or has been destroyed.

    Used for:
    - Network connectivity issues
    - Authentication/authorization failures
    - Operations on a table whose connection was destroyed
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None, context: Optional[Dict[str, Any]] = None):
        """Initialize connection error.

        Args:
            message: Human-readable error message
            original_error: The original exception that caused this error
            context: Additional context information (e.g., endpoint, region)
        """
        super().__init__(message, original_error, context)


class RetryableError(DynamoDMError):
    """Raised when an operation fails due to temporary/throttling issues that can be retried.

    Used for:
    - ProvisionedThroughputExceededException
    - RequestLimitExceeded errors
    - Temporary service unavailability
    """

    def __init__(self, message: str, retry_after_seconds: Optional[int] = None, original_error: Optional[Exception] = None):
        """Initialize retryable error.

        Args:
            message: Human-readable error message
            retry_after_seconds: Suggested retry delay in seconds
            original_error: The original exception that caused this error
        """
        self.retry_after_seconds = retry_after_seconds
        context = {}
        if retry_after_seconds:
            context['retry_after_seconds'] = retry_after_seconds
        super().__init__(message, original_error, context)


class MaxRetriesExceededError(DynamoDMError):
    """Raised when unprocessed batch reads are still pending after the maximum number of retries."""

    def __init__(self, message: str = "Request failed: maximum retries exceeded.", retries: Optional[int] = None):
        self.retries = retries
        context = {'retries': retries} if retries is not None else None
        super().__init__(message, None, context)


class AbortError(DynamoDMError):
    """Raised when an operation is cancelled through an abort signal."""

    def __init__(self, message: str = "Request aborted", reason: Any = None):
        self.reason = reason
        super().__init__(message)

# Base exception class
from .base import DynamoDMError

# Domain-specific exceptions
from .domain_exceptions import (
    AbortError,
    ConfigurationError,
    ConflictError,
    ConnectionError,
    ConsistencyError,
    DuplicateIdError,
    MaxRetriesExceededError,
    NotFoundError,
    PartialDocumentError,
    RetryableError,
    UnsupportedQueryError,
    ValidationError,
    VersionConflictError,
)

__all__ = [
    # Base exception
    "DynamoDMError",

    # Domain exceptions (alphabetically ordered)
    "AbortError",
    "ConfigurationError",
    "ConflictError",
    "ConnectionError",
    "ConsistencyError",
    "DuplicateIdError",
    "MaxRetriesExceededError",
    "NotFoundError",
    "PartialDocumentError",
    "RetryableError",
    "UnsupportedQueryError",
    "ValidationError",
    "VersionConflictError",
]

"""
dynamodm: schema-validated documents in DynamoDB.

Several document types share one table (single-table design). Documents are
validated against JSON-Schema shapes, stored with optimistic concurrency, and
queried through the table's global secondary indexes.
"""

import logging

from .api import DynamoDM
from .config import DynamoDMConfig, RetryOptions
from .core import AbortController, AbortSignal, TableGateway, create_table_gateway
from .exceptions import (
    AbortError,
    ConfigurationError,
    ConflictError,
    ConnectionError,
    ConsistencyError,
    DuplicateIdError,
    DynamoDMError,
    MaxRetriesExceededError,
    NotFoundError,
    PartialDocumentError,
    RetryableError,
    UnsupportedQueryError,
    ValidationError,
    VersionConflictError,
)
from .models import Document
from .schema import (
    Binary,
    CreatedAtField,
    DocId,
    DocIdField,
    Schema,
    Timestamp,
    TypeField,
    UpdatedAtField,
    VersionField,
)
from .table import Table

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "1.0.0"
__all__ = [
    # Entry points
    "DynamoDM",
    "Schema",
    "Table",
    "Document",

    # Configuration
    "DynamoDMConfig",
    "RetryOptions",

    # Built-in types and fields
    "Binary",
    "CreatedAtField",
    "DocId",
    "DocIdField",
    "Timestamp",
    "TypeField",
    "UpdatedAtField",
    "VersionField",

    # Storage
    "AbortController",
    "AbortSignal",
    "TableGateway",
    "create_table_gateway",

    # Exceptions
    "AbortError",
    "ConfigurationError",
    "ConflictError",
    "ConnectionError",
    "ConsistencyError",
    "DuplicateIdError",
    "DynamoDMError",
    "MaxRetriesExceededError",
    "NotFoundError",
    "PartialDocumentError",
    "RetryableError",
    "UnsupportedQueryError",
    "ValidationError",
    "VersionConflictError",
]

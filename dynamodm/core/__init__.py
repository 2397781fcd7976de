"""
Core infrastructure components for DynamoDB operations.

This module contains the foundational components used by tables and models:
- TableGateway: Asynchronous wrapper over boto3 DynamoDB operations
- AbortController/AbortSignal: cooperative cancellation of storage requests
"""

from .abort import AbortController, AbortSignal, abortable_sleep, run_abortable
from .table_gateway import TableGateway, create_table_gateway, map_dynamodb_error

__all__ = [
    "AbortController",
    "AbortSignal",
    "TableGateway",
    "abortable_sleep",
    "create_table_gateway",
    "map_dynamodb_error",
    "run_abortable",
]

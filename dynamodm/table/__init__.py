"""
Table coordination.

- table: the Table coordinator (schema registration, readiness protocol)
- indexes: required-index computation, compatibility checks, remote diffing
- retry: batch-read backoff policy
"""

from .indexes import check_index_compatibility, diff_indexes, required_indexes
from .retry import RetryPolicy
from .table import Table

__all__ = [
    "RetryPolicy",
    "Table",
    "check_index_compatibility",
    "diff_indexes",
    "required_indexes",
]

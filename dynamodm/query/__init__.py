"""
Query translation and execution.

- conditions: simplified query parsing
- planner: index selection and native Query request construction
- pagination: logical-limit pagination and the id-batch fetch pipeline
- batch_get: chunked BatchGetItem with unprocessed-key retries
"""

from .batch_get import BATCH_GET_ITEM_LIMIT, batch_get_by_ids
from .conditions import SUPPORTED_CONDITIONS, Condition, QueryEntry, parse_query_entries
from .pagination import FetchPipeline, query_id_batches, query_ids, query_item_batches
from .planner import (
    convert_query,
    exclusive_start_key,
    key_condition_expression,
    marshal_query_values,
    select_index,
)

__all__ = [
    "BATCH_GET_ITEM_LIMIT",
    "Condition",
    "FetchPipeline",
    "QueryEntry",
    "SUPPORTED_CONDITIONS",
    "batch_get_by_ids",
    "convert_query",
    "exclusive_start_key",
    "key_condition_expression",
    "marshal_query_values",
    "parse_query_entries",
    "query_id_batches",
    "query_ids",
    "query_item_batches",
    "select_index",
]

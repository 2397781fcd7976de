"""
Models and documents.

- document: the Document base class (construction, persistence, queries)
- factory: per-schema model classes
- virtuals: virtual properties
- options: option models of the model API
"""

from .document import Document, deep_clone
from .factory import RESERVED_NAMES, create_model
from .options import (
    DEFAULT_QUERY_LIMIT,
    GetByIdOptions,
    QueryManyIdsOptions,
    QueryManyOptions,
    QueryOneIdOptions,
    QueryOneOptions,
    RawFetchOptions,
    RawQueryIteratorIdsOptions,
    RawQueryManyIdsOptions,
    RawQueryOneIdOptions,
    RawQueryOptions,
    parse_options,
)
from .virtuals import VirtualProperty, build_virtuals

__all__ = [
    "DEFAULT_QUERY_LIMIT",
    "Document",
    "GetByIdOptions",
    "QueryManyIdsOptions",
    "QueryManyOptions",
    "QueryOneIdOptions",
    "QueryOneOptions",
    "RESERVED_NAMES",
    "RawFetchOptions",
    "RawQueryIteratorIdsOptions",
    "RawQueryManyIdsOptions",
    "RawQueryOneIdOptions",
    "RawQueryOptions",
    "VirtualProperty",
    "build_virtuals",
    "create_model",
    "deep_clone",
    "parse_options",
]

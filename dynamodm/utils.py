"""
dynamodm Utilities

Small helpers shared by the schema, query and model layers:

- Time conversion between datetimes and epoch milliseconds (the stored
  representation of Timestamp fields)
- Number conversion between Python numbers and boto3's Decimal
- Sortable identifier generation

Architecture Compliance:
- Timestamps are always stored as UTC epoch milliseconds
- Timestamps are timezone-aware datetimes; naive datetimes fail validation
"""

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from ulid import ULID


# =============================================================================
# Time Utilities
# =============================================================================

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MILLISECOND = timedelta(milliseconds=1)


def datetime_to_epoch_ms(dt: datetime) -> int:
    """Convert a datetime to integer milliseconds since the unix epoch.

    dt must be timezone-aware. Sub-millisecond precision is truncated.

    Example:
        >>> datetime_to_epoch_ms(datetime(2024, 1, 1, tzinfo=timezone.utc))
        1704067200000
    """
    return (dt.astimezone(timezone.utc) - EPOCH) // ONE_MILLISECOND


def epoch_ms_to_datetime(ms: Any) -> datetime:
    """Convert milliseconds since the unix epoch to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=int(ms))


def utc_now() -> datetime:
    """Current UTC time, truncated to the millisecond precision that is stored."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


# =============================================================================
# Number Conversion (boto3 represents all numbers as Decimal)
# =============================================================================

def to_storage_number(value: float) -> Decimal:
    """Convert a float to the Decimal representation accepted by boto3."""
    return Decimal(str(value))


def from_storage_number(value: Decimal) -> Any:
    """Convert a Decimal returned by boto3 to int when integral, otherwise float."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# =============================================================================
# Identifier Generation
# =============================================================================

_id_lock = threading.Lock()
_last_ulid: Optional[ULID] = None


def new_sortable_id() -> str:
    """Generate a ULID string, strictly increasing within this process.

    ULIDs generated within the same millisecond are not ordered by creation,
    so a value that does not sort after the previous one is replaced with the
    previous value plus one.
    """
    global _last_ulid
    with _id_lock:
        candidate = ULID()
        if _last_ulid is not None and int(candidate) <= int(_last_ulid):
            candidate = ULID.from_int(int(_last_ulid) + 1)
        _last_ulid = candidate
        return str(candidate)


def default_document_id(schema_name: str) -> str:
    """Default document id: ``{schema_name}.{ULID}``.

    The ``{schema_name}.`` prefix is what allows a table to load a document by
    id without knowing its type in advance.
    """
    return f"{schema_name}.{new_sortable_id()}"

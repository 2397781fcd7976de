"""
Batch get-by-ids.

BatchGetItem reads at most 100 keys per request, and may leave keys
unprocessed (typically when read capacity is throttled). Unprocessed keys are
retried with jittered exponential backoff, and each retry request is topped
up with keys that have not been requested yet so that every request stays
full.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Union

from ..core.abort import AbortSignal, abortable_sleep

BATCH_GET_ITEM_LIMIT = 100


async def batch_get_by_ids(
    gateway,
    ids: List[str],
    id_field_name: str,
    retry_policy,
    consistent_read: bool = False,
    abort_signal: Optional[AbortSignal] = None,
    logger: Union[logging.Logger, logging.LoggerAdapter, None] = None
) -> List[Optional[Dict[str, Any]]]:
    """
    Get the stored items for a list of ids.

    Args:
        gateway: Table gateway
        ids: Document ids (any number, duplicates allowed)
        id_field_name: Name of the table hash key
        retry_policy: RetryPolicy providing backoff delays for unprocessed keys
        consistent_read: Use strongly consistent reads
        abort_signal: Optional abort signal
        logger: Logger for request tracing

    Returns:
        Items in the same order as ids, with None for ids that are not stored

    Raises:
        MaxRetriesExceededError: If keys are still unprocessed after the maximum number of retries
    """
    log = logger if logger is not None else logging.getLogger(__name__)

    # BatchGetItem rejects duplicate keys in one request
    unique_ids = list(dict.fromkeys(ids))
    pending = [{id_field_name: doc_id} for doc_id in unique_ids]
    keys, overflow = pending[:BATCH_GET_ITEM_LIMIT], pending[BATCH_GET_ITEM_LIMIT:]

    results: Dict[str, Dict[str, Any]] = {}
    retry_count = 0
    while keys:
        log.debug(f"batch get {len(keys)} keys ({len(overflow)} remaining)")
        items, unprocessed = await gateway.batch_get_item(
            keys,
            consistent_read=consistent_read,
            abort_signal=abort_signal
        )
        for item in items:
            results[item[id_field_name]] = item

        keys = list(unprocessed)
        if keys:
            # unprocessed keys are usually caused by throttling, so back off
            retry_count += 1
            delay = retry_policy.delay_seconds(retry_count)
            log.debug(f"{len(keys)} keys unprocessed, retry {retry_count} after {delay:.3f}s")
            await abortable_sleep(delay, abort_signal)

        space_available = BATCH_GET_ITEM_LIMIT - len(keys)
        keys.extend(overflow[:space_available])
        overflow = overflow[space_available:]

    # repeated ids get their own copy, since items are converted in place when loaded
    ordered: List[Optional[Dict[str, Any]]] = []
    returned = set()
    for doc_id in ids:
        item = results.get(doc_id)
        if item is not None and doc_id in returned:
            item = copy.deepcopy(item)
        returned.add(doc_id)
        ordered.append(item)
    return ordered

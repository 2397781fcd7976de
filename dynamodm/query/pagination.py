"""
Query pagination and the id-batch / record-fetch pipeline.

DynamoDB's ``Limit`` bounds the items *evaluated* by one Query call, and a
page may also end early at 1MB. The caller's logical ``limit`` bounds the
total number of items returned, so queries keep issuing Query calls
(carrying ``LastEvaluatedKey`` forward as ``ExclusiveStartKey``) until the
logical limit is reached or there is no continuation.

``FetchPipeline`` overlaps the next id-batch query with record fetches of
earlier batches, with a bounded number of fetches in flight. Results keep
batch order, and the first fetch failure stops the pipeline and cancels
outstanding fetches.
"""

import asyncio
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    TypeVar,
)

from ..core.abort import AbortSignal

T = TypeVar('T')

DEFAULT_FETCH_WINDOW = 4


async def query_item_batches(
    gateway,
    request: Dict[str, Any],
    limit: Optional[int] = None,
    abort_signal: Optional[AbortSignal] = None
) -> AsyncIterator[List[Dict[str, Any]]]:
    """
    Yield the items of a Query, page by page, up to limit items in total.

    Empty pages are skipped. The request dict is not modified.

    Args:
        gateway: Table gateway
        request: Native Query request
        limit: Logical limit on the total number of items (None for no limit)
        abort_signal: Optional abort signal
    """
    request = dict(request)
    remaining = limit
    while True:
        response = await gateway.query(abort_signal=abort_signal, **request)
        items = response.get('Items', [])
        if remaining is not None and len(items) >= remaining:
            if remaining:
                yield items[:remaining]
            return
        if remaining is not None:
            remaining -= len(items)
        if items:
            yield items
        last_evaluated_key = response.get('LastEvaluatedKey')
        if not last_evaluated_key:
            return
        request['ExclusiveStartKey'] = last_evaluated_key


async def query_id_batches(
    gateway,
    request: Dict[str, Any],
    id_field_name: str,
    limit: Optional[int] = None,
    abort_signal: Optional[AbortSignal] = None
) -> AsyncIterator[List[str]]:
    """Yield batches of document ids matching a Query, up to limit ids in total."""
    async for items in query_item_batches(gateway, request, limit, abort_signal):
        yield [item[id_field_name] for item in items]


async def query_ids(
    gateway,
    request: Dict[str, Any],
    id_field_name: str,
    limit: Optional[int] = None,
    abort_signal: Optional[AbortSignal] = None
) -> AsyncIterator[str]:
    """Yield document ids matching a Query one at a time, up to limit ids."""
    batches = query_id_batches(gateway, request, id_field_name, limit, abort_signal)
    try:
        async for ids in batches:
            for doc_id in ids:
                yield doc_id
    finally:
        await batches.aclose()


class FetchPipeline:
    """
    Fetch the records of id batches with a bounded number of fetches in flight.

    Args:
        fetch: ``fetch(batch) -> awaitable list of results``
        max_in_flight: Maximum number of concurrent fetches

    Example:
        pipeline = FetchPipeline(lambda ids: Model.get_by_ids(ids))
        docs = await pipeline.run(query_id_batches(gateway, request, 'id', limit=50))
    """

    def __init__(self, fetch: Callable[[List[Any]], Awaitable[List[T]]], max_in_flight: int = DEFAULT_FETCH_WINDOW):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        self._fetch = fetch
        self._max_in_flight = max_in_flight

    async def run(self, batches: AsyncIterator[List[Any]]) -> List[T]:
        """Consume batches, fetch each one, and return the flattened results in batch order.

        Raises:
            The first exception raised by the batch producer or by any fetch
        """
        window = asyncio.Semaphore(self._max_in_flight)
        tasks: List[asyncio.Future] = []
        failures: List[BaseException] = []

        async def fetch_batch(batch):
            try:
                return await self._fetch(batch)
            except Exception as e:
                failures.append(e)
                raise
            finally:
                window.release()

        try:
            async for batch in batches:
                await window.acquire()
                if failures:
                    window.release()
                    break
                tasks.append(asyncio.ensure_future(fetch_batch(batch)))
            if failures:
                raise failures[0]
            results = await asyncio.gather(*tasks)
        except BaseException:
            await self._cancel(tasks)
            raise
        finally:
            aclose = getattr(batches, 'aclose', None)
            if aclose is not None:
                await aclose()

        flattened: List[T] = []
        for result in results:
            flattened.extend(result)
        return flattened

    @staticmethod
    async def _cancel(tasks: List[asyncio.Future]) -> None:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        # settle every task so no exception is left unretrieved
        await asyncio.gather(*tasks, return_exceptions=True)

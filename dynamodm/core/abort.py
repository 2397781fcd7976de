"""
Cooperative cancellation for storage operations.

An AbortController owns an AbortSignal; the signal is passed to model and
query operations (``abort_signal=``) and threaded through to every request
sent to the table gateway. Semantics:

- a signal that is already aborted rejects immediately, without sending
  the request
- aborting while a request is in flight rejects the waiting operation with
  AbortError; the in-flight request is left to finish and its outcome is
  discarded
- aborting after an operation completed is a no-op

Signals are meant to be used from the event loop thread that runs the
operations they cancel.
"""

import asyncio
import inspect
from typing import Any, Awaitable, List, Optional, TypeVar

from ..exceptions import AbortError

T = TypeVar('T')


class AbortSignal:
    """Read side of an AbortController."""

    def __init__(self):
        self._aborted = False
        self._reason: Any = None
        self._waiters: List[asyncio.Future] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    def raise_if_aborted(self) -> None:
        if self._aborted:
            raise AbortError(reason=self._reason)

    async def wait(self) -> Any:
        """Wait until the signal is aborted, returning the abort reason."""
        if self._aborted:
            return self._reason
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def _abort(self, reason: Any) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(reason)


class AbortController:
    """Creates an AbortSignal and aborts it on demand.

    Example:
        controller = AbortController()
        task = asyncio.create_task(Comment.query_many({...}, abort_signal=controller.signal))
        controller.abort()
        await task  # raises AbortError
    """

    def __init__(self):
        self.signal = AbortSignal()

    def abort(self, reason: Any = None) -> None:
        self.signal._abort(reason)


def _discard_outcome(future: asyncio.Future) -> None:
    # retrieve the outcome so that late failures are not reported as unhandled
    if not future.cancelled():
        future.exception()


async def run_abortable(awaitable: Awaitable[T], signal: Optional[AbortSignal] = None) -> T:
    """Await awaitable, rejecting with AbortError as soon as signal is aborted.

    Args:
        awaitable: Coroutine or future performing the operation
        signal: Optional abort signal

    Returns:
        The result of awaitable

    Raises:
        AbortError: If the signal is (or becomes) aborted before completion
    """
    if signal is None:
        return await awaitable
    if signal.aborted:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise AbortError(reason=signal.reason)

    operation = asyncio.ensure_future(awaitable)
    aborted = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({operation, aborted}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        operation.cancel()
        aborted.cancel()
        raise

    if operation in done:
        aborted.cancel()
        return operation.result()

    operation.add_done_callback(_discard_outcome)
    operation.cancel()
    raise AbortError(reason=signal.reason)


async def abortable_sleep(seconds: float, signal: Optional[AbortSignal] = None) -> None:
    """Sleep for seconds, waking early with AbortError if signal is aborted."""
    await run_abortable(asyncio.sleep(seconds), signal)

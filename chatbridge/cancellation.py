"""
Cooperative cancellation for streaming calls.

A CancellationToken is handed to a chat or pull call. Every suspension
point of that call (waiting for response headers, waiting for the next
body chunk) is raced against the token with race(). When the token wins,
the pending await is cancelled and OperationCancelled is raised; adapters
catch it and end their stream quietly. Cancellation is never surfaced to
the caller as an error.
"""

import asyncio
import inspect
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class OperationCancelled(Exception):
    """Internal signal: the call's token fired while it was suspended."""
    pass


class CancellationToken:
    """One-shot stop signal shared between a caller and a running call."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()


async def race(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """
    Await `awaitable` unless `token` fires first.

    Raises OperationCancelled if the token fired. The losing await is
    cancelled and awaited so nothing is left running in the background.
    """
    if token is None:
        return await awaitable

    if token.is_cancelled:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelled()

    work = asyncio.ensure_future(awaitable)
    stop = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop.cancel()
        if not work.done():
            work.cancel()
            # Let the cancelled read unwind before the caller closes the stream
            await asyncio.gather(work, return_exceptions=True)

    if work.cancelled():
        raise OperationCancelled()
    return work.result()

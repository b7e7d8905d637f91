"""
Caller-held cancellation for streaming calls.

A ``CancellationToken`` is handed to ``stream``.  Every network wait inside
the stream is raced against the token, so ``cancel()`` abandons a pending read
right away instead of waiting for the next byte from the backend.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StreamCancelled(Exception):
    """Internal signal that the token fired while a wait was pending."""


class CancellationToken:
    """Idempotent, one-shot cancellation signal."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation.  Calling it again, or after the stream ended, does nothing."""
        if self._event.is_set():
            return
        logger.debug("Cancellation requested")
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """
        Await *awaitable* unless the token fires first.

        Raises ``StreamCancelled`` when cancelled; the abandoned awaitable is
        cancelled and awaited so its resources are released.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise StreamCancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise StreamCancelled()


async def _next(iterator: AsyncIterator[T]) -> T:
    return await iterator.__anext__()


async def cancellable(
    source: AsyncIterable[T],
    token: CancellationToken,
) -> AsyncIterator[T]:
    """
    Re-yield *source* until it ends or *token* fires.

    Ends by raising ``StreamCancelled`` when the token fires, so the caller can
    tell a cancelled stream from an exhausted one.
    """
    iterator = source.__aiter__()
    try:
        while True:
            try:
                item = await token.race(_next(iterator))
            except StopAsyncIteration:
                return
            yield item
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()

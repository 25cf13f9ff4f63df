"""Timeouts and cooperative cancellation for long-running integration steps."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


class CancellationToken:
    """Set once by a signal handler or caller; observed by awaiting code."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise asyncio.CancelledError("operation cancelled")


def _discard(awaitable: Awaitable[object]) -> None:
    # a coroutine that is never scheduled warns at collection time unless closed
    if inspect.iscoroutine(awaitable):
        awaitable.close()


async def _resolve(awaitable: Awaitable[T]) -> T:
    return await awaitable


async def run_with_timeout(
    coroutine: Awaitable[T],
    timeout_seconds: float,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Await ``coroutine``, giving up after ``timeout_seconds`` or when the token fires.

    Raises ``TimeoutError`` on expiry and ``asyncio.CancelledError`` on cancellation;
    in both cases the underlying work is cancelled before returning.
    """

    if timeout_seconds <= 0:
        _discard(coroutine)
        raise ValueError("timeout_seconds must be > 0")
    token = CancellationToken() if cancel_token is None else cancel_token
    if token.is_cancelled:
        _discard(coroutine)
        raise asyncio.CancelledError("operation cancelled")

    work: asyncio.Task[T] = asyncio.create_task(_resolve(coroutine))
    watcher = asyncio.create_task(token.wait())
    try:
        finished, _ = await asyncio.wait(
            {work, watcher}, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED
        )
        if work in finished:
            return work.result()
        work.cancel()
        with suppress(asyncio.CancelledError):
            await work
        if watcher in finished:
            raise asyncio.CancelledError("operation cancelled")
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")
    finally:
        watcher.cancel()
        with suppress(asyncio.CancelledError):
            await watcher


async def sleep_or_cancel(seconds: float, cancel_token: CancellationToken) -> bool:
    """Sleep up to ``seconds``; return ``True`` if the token fired meanwhile."""

    if not cancel_token.is_cancelled:
        with suppress(TimeoutError):
            await asyncio.wait_for(cancel_token.wait(), timeout=seconds)
    return cancel_token.is_cancelled


__all__ = [
    "CancellationToken",
    "run_with_timeout",
    "sleep_or_cancel",
]

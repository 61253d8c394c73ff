"""
Cooperative cancellation for playback tasks.

A CancelToken is shared between an audio session controller and the one
playback task it launched. Firing the token unblocks every wait made
through it: the pacing delay, guarded source reads and the streaming
request watcher.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from ._types import PlaybackCancelled

T = TypeVar("T")


class CancelToken:
    """One-shot cancellation signal backed by an asyncio.Event."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Fire the token. Idempotent."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PlaybackCancelled()

    async def wait(self) -> None:
        """Block until the token fires."""
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """
        Sleep for ``delay`` seconds unless the token fires first.

        Raises:
            PlaybackCancelled: If the token fired before or during the sleep
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise PlaybackCancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        If the token wins, the awaitable is cancelled. A coroutine passed
        in after the token fired is closed without being run.

        Raises:
            PlaybackCancelled: If the token fired before the awaitable finished
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise PlaybackCancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()
        task.cancel()
        raise PlaybackCancelled()

    def __repr__(self) -> str:
        return f"<CancelToken(cancelled={self.cancelled})>"


__all__ = ["CancelToken"]

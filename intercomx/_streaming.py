"""
Paced streaming of raw audio to an intercom device.

The device's audio endpoint is a live HTTP upload with no flow control, so
audio has to be written at the rate the device plays it: one packet every
``packet_size / sample_rate`` seconds. This module holds the chunk sources
the gateway can play from and the pacing loop that drains them.
"""

from __future__ import annotations

import asyncio
import typing
from typing import Awaitable, Callable, Optional, Union

from ._cancel import CancelToken

# Bytes a PipeSource buffers before its producer has to wait
HIGH_WATER_MARK = 64 * 1024

Sink = Callable[[bytes], Union[Awaitable[None], None]]


# ============================================================================
# Chunk Sources
# ============================================================================


@typing.runtime_checkable
class ChunkSource(typing.Protocol):
    """
    Anything the pacing loop can pull audio from.

    ``read(size)`` never waits for data: it returns a full packet, the
    remaining tail once the source has ended, or ``b""`` when nothing is
    ready yet.
    """

    @property
    def exhausted(self) -> bool: ...

    async def read(self, size: int) -> bytes: ...

    async def aclose(self) -> None: ...


class BufferSource:
    """One-shot source over an in-memory buffer.

    Once drained or closed it cannot be replayed.
    """

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(bytes(data))
        self._offset = 0
        self._closed = False

    @property
    def exhausted(self) -> bool:
        return self._closed or self._offset >= len(self._data)

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, size: int) -> bytes:
        if self._closed:
            return b""
        chunk = self._data[self._offset : self._offset + size]
        self._offset += len(chunk)
        return bytes(chunk)

    async def aclose(self) -> None:
        self._closed = True

    def __repr__(self) -> str:
        return f"<BufferSource({self._offset}/{len(self._data)} bytes)>"


class PipeSource:
    """Live passthrough source: a producer feeds bytes, the pacing loop drains them.

    A PipeSource survives a restart as long as its producer keeps feeding
    it, which is what lets a button press replay the same stream.

    Once ``high_water_mark`` bytes are buffered, ``feed`` waits until the
    pacing loop has drained the buffer below that mark. A producer that is
    faster than real time is held back instead of filling memory.
    """

    def __init__(self, high_water_mark: int = HIGH_WATER_MARK) -> None:
        if high_water_mark <= 0:
            raise ValueError("high_water_mark must be positive")
        self.high_water_mark = high_water_mark
        self._buffer = bytearray()
        self._space = asyncio.Event()
        self._space.set()
        self._ended = False
        self._closed = False

    async def feed(self, data: bytes) -> None:
        """
        Append data from the producer. Ignored once closed or ended.

        Waits while the buffer is at or above the high-water mark.
        """
        if self._closed or self._ended:
            return
        self._buffer.extend(data)
        if len(self._buffer) >= self.high_water_mark:
            self._space.clear()
            await self._space.wait()

    def end(self) -> None:
        """Mark the end of the producer's data."""
        self._ended = True

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet read."""
        return len(self._buffer)

    @property
    def exhausted(self) -> bool:
        return self._closed or (self._ended and not self._buffer)

    async def read(self, size: int) -> bytes:
        if self._closed:
            return b""
        # A full buffer is handed out even when short of a packet
        if len(self._buffer) < min(size, self.high_water_mark) and not self._ended:
            return b""
        chunk = bytes(self._buffer[:size])
        del self._buffer[:size]
        if len(self._buffer) < self.high_water_mark:
            self._space.set()
        return chunk

    async def aclose(self) -> None:
        self._closed = True
        self._buffer.clear()
        self._space.set()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "ended" if self._ended else "open"
        return f"<PipeSource({len(self._buffer)} bytes, {state})>"


# ============================================================================
# Pacing
# ============================================================================


def packet_interval(sample_rate: int, packet_size: int) -> float:
    """
    Return the delay between two packets in seconds.

    Example:
        >>> packet_interval(8000, 320)
        0.04
    """
    if sample_rate <= 0 or packet_size <= 0:
        raise ValueError("sample_rate and packet_size must be positive")
    return 1.0 / (sample_rate / packet_size)


async def pace(
    source: ChunkSource,
    sink: Sink,
    *,
    packet_size: int,
    interval: float,
    token: CancelToken,
    keep_going: Optional[Callable[[], bool]] = None,
) -> bool:
    """
    Drain ``source`` into ``sink`` one packet per ``interval``.

    Args:
        source: Where audio is pulled from
        sink: Called with every non-empty chunk (may be async)
        packet_size: Maximum bytes pulled per iteration
        interval: Delay after each iteration, in seconds
        token: Cancellation token; fires abort the read and the delay
        keep_going: Checked before every iteration; the loop stops when it
            returns False

    Returns:
        True if the source was exhausted, False if ``keep_going`` stopped it

    Raises:
        PlaybackCancelled: If the token fired
    """
    while keep_going is None or keep_going():
        chunk = await token.guard(source.read(packet_size))
        if not chunk and source.exhausted:
            return True
        if chunk:
            result = sink(chunk)
            if result is not None:
                await result
        await token.sleep(interval)
    return False


__all__ = [
    "Sink",
    "ChunkSource",
    "BufferSource",
    "PipeSource",
    "packet_interval",
    "pace",
]

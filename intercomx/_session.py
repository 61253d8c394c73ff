"""
Audio session controller.

One controller per device owns the device's outbound audio session:

  STOPPED ──play()──► PLAYING ──stop()──────────► STOPPING ──► STOPPED
                         │
                         └──on_button_press()──► RESTARTING ──► STOPPED
                                                   (settle) ──► PLAYING

Every transition runs under the controller's lock, so at most one playback
task exists per device. A transition out of a running session fires the
session's cancellation token and awaits the playback task before going on;
if the state does not read STOPPED afterwards, StateConsistencyError is
raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

from ._cancel import CancelToken
from ._streaming import ChunkSource, pace, packet_interval
from ._types import PlaybackCancelled, StateConsistencyError, StreamState
from ._utils import SETTLE_DELAY, logger

StateCallback = Callable[[StreamState, StreamState], None]


class MediaTransport(Protocol):
    """What the controller needs from the device's media channel."""

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    def stream(self, token: CancelToken): ...


class AudioSessionController:
    """
    Serializes start, stop and restart of one device's audio session.

    Attributes:
        state: Current session state
        source: Source of the current (or last ended) session, None after stop()
    """

    def __init__(
        self,
        transport: MediaTransport,
        *,
        sample_rate: int = 8000,
        packet_size: int = 320,
        settle_delay: float = SETTLE_DELAY,
        on_state_change: Optional[StateCallback] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        """
        Initialize the controller in STOPPED state.

        Args:
            transport: Media channel audio is streamed to
            sample_rate: Outgoing sample rate in Hz
            packet_size: Bytes written per packet
            settle_delay: Pause between the end of a session and its
                restart after a button press, in seconds
            on_state_change: Called with (old, new) on every transition
            log: Logger to use
        """
        self.transport = transport
        self.sample_rate = sample_rate
        self.packet_size = packet_size
        self.interval = packet_interval(sample_rate, packet_size)
        self.settle_delay = settle_delay
        self.on_state_change = on_state_change
        self.log = log or logger

        self.state = StreamState.STOPPED
        self.source: Optional[ChunkSource] = None
        self._lock = asyncio.Lock()
        self._token = CancelToken()
        self._completion: Optional[asyncio.Task] = None
        self._pending_restart: Optional[ChunkSource] = None
        self._background: set[asyncio.Task] = set()

    @property
    def is_playing(self) -> bool:
        return self.state is StreamState.PLAYING

    def _set_state(self, new_state: StreamState) -> None:
        old_state = self.state
        self.state = new_state
        self.log.debug(f"Stream state {old_state.name} -> {new_state.name}")
        if self.on_state_change is not None:
            self.on_state_change(old_state, new_state)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """
        Stop the current session, if any, wait until it has ended and close
        its source.

        Raises:
            StateConsistencyError: If the session did not end in STOPPED
        """
        async with self._lock:
            self._pending_restart = None
            await self._stop_locked(StreamState.STOPPING)
            await self._release_source()

    async def play(self, source: ChunkSource) -> None:
        """
        Play ``source`` on the device, replacing any running session.

        Returns once this playback has ended, whether the source ran out
        or the session was stopped or restarted. The source of a replaced
        session is closed.

        Raises:
            StateConsistencyError: If the previous session did not end in
                STOPPED
        """
        async with self._lock:
            self._pending_restart = None
            await self._stop_locked(StreamState.STOPPING)
            await self._release_source(keep=source)

            self._token = CancelToken()
            self.source = source
            self._set_state(StreamState.PLAYING)
            completion = asyncio.create_task(self._run(source, self._token))
            self._completion = completion

        await asyncio.shield(completion)

    async def on_button_press(self) -> bool:
        """
        Restart the current session from the same source.

        A press while nothing is playing does nothing. Otherwise the running
        session is ended, and after ``settle_delay`` seconds the same source
        is played again in the background. Only meaningful for live sources
        that are still being fed.

        Returns:
            True if a restart was scheduled

        Raises:
            StateConsistencyError: If the session did not end in STOPPED
        """
        async with self._lock:
            if self.state is not StreamState.PLAYING or self.source is None:
                return False

            self.log.info("Restarting output stream")
            source = self.source
            await self._stop_locked(StreamState.RESTARTING)
            self._pending_restart = source

        await asyncio.sleep(self.settle_delay)

        if self._pending_restart is not source:
            self.log.info("Restart abandoned, the session was changed meanwhile")
            return False

        self.spawn(self.play(source))
        return True

    def spawn(self, coro) -> asyncio.Task:
        """Run ``coro`` in the background, logging any error it ends with."""
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.log.error(f"Background playback failed: {error}", exc_info=error)

    async def aclose(self) -> None:
        """Stop the session and drop background work."""
        await self.stop()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _stop_locked(self, transition: StreamState) -> None:
        if self.state is not StreamState.STOPPED:
            self._set_state(transition)
            self._token.cancel()

        if self._completion is not None:
            await asyncio.shield(self._completion)

        if self.state is not StreamState.STOPPED:
            self.log.warning(
                f"Expected output stream to be stopped after aborting but got {self.state.name}"
            )
            raise StateConsistencyError("Failed to stop output stream")

    async def _release_source(self, keep: Optional[ChunkSource] = None) -> None:
        # Only a pending restart replays a source; any other ended session lets go of it
        source, self.source = self.source, None
        if source is not None and source is not keep:
            await source.aclose()

    # ------------------------------------------------------------------
    # Playback task
    # ------------------------------------------------------------------

    async def _run(self, source: ChunkSource, token: CancelToken) -> None:
        try:
            self.log.info("Starting output stream playback")

            # Close first: a previous session may have left the channel open
            await self.transport.close()
            await self.transport.open()

            async with self.transport.stream(token) as stream:
                await pace(
                    source,
                    stream.feed,
                    packet_size=self.packet_size,
                    interval=self.interval,
                    token=token,
                    keep_going=lambda: self.state is StreamState.PLAYING,
                )
        except PlaybackCancelled:
            pass
        except Exception as e:
            self.log.warning(f"Unknown exception caught during stream playback: {e}")
        finally:
            self.log.info("Closing output stream")
            if self.state is StreamState.PLAYING:
                # Reached the end of the source, or failed
                await source.aclose()
            try:
                await self.transport.close()
            except Exception as e:
                self.log.warning(f"Failed to close audio channel: {e}")
            self._set_state(StreamState.STOPPED)

    def __repr__(self) -> str:
        return f"<AudioSessionController({self.state.name})>"


__all__ = [
    "AudioSessionController",
    "MediaTransport",
    "StateCallback",
]

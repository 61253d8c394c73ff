"""
ffmpeg-backed audio source.

Devices only accept mono mu-law at their configured sample rate, so any
other audio (a URL or an uploaded file) is piped through ffmpeg. The
output is pumped into a PipeSource that the pacing loop drains.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional, Sequence

from ._streaming import PipeSource
from ._types import TransportError
from ._utils import logger

FFMPEG = "ffmpeg"
READ_SIZE = 4096


def ffmpeg_args(input_url: str, sample_rate: int) -> list[str]:
    """Return the ffmpeg arguments converting ``input_url`` to raw mu-law on stdout."""
    return [
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        input_url,
        "-vn",
        "-ar",
        str(sample_rate),
        "-ac",
        "1",
        "-acodec",
        "pcm_mulaw",
        "-f",
        "mulaw",
        "pipe:1",
    ]


class TranscodedSource(PipeSource):
    """
    A PipeSource fed by an ffmpeg process.

    Use ``from_url`` or ``from_bytes`` to build one; closing the source
    kills the process if it is still running.
    """

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        super().__init__()
        self.log = log or logger
        self._process: Optional[asyncio.subprocess.Process] = None
        self._tasks: list[asyncio.Task] = []

    @classmethod
    async def from_url(
        cls,
        url: str,
        sample_rate: int,
        *,
        executable: str = FFMPEG,
        log: Optional[logging.Logger] = None,
    ) -> TranscodedSource:
        """
        Start transcoding the audio found at ``url``.

        Raises:
            TransportError: If ffmpeg cannot be started
        """
        source = cls(log)
        source.log.debug(f"Playing audio from url {url}")
        await source._start([executable, *ffmpeg_args(url, sample_rate)])
        return source

    @classmethod
    async def from_bytes(
        cls,
        data: bytes,
        sample_rate: int,
        *,
        executable: str = FFMPEG,
        log: Optional[logging.Logger] = None,
    ) -> TranscodedSource:
        """
        Start transcoding an in-memory audio file.

        Raises:
            TransportError: If ffmpeg cannot be started
        """
        source = cls(log)
        source.log.debug(f"Playing audio data of length {len(data)}")
        await source._start([executable, *ffmpeg_args("pipe:0", sample_rate)], stdin=data)
        return source

    async def _start(self, command: Sequence[str], stdin: Optional[bytes] = None) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransportError(f"Failed to start {command[0]}: {e}") from e

        self._tasks.append(asyncio.create_task(self._pump_stdout()))
        self._tasks.append(asyncio.create_task(self._drain_stderr()))
        if stdin is not None:
            self._tasks.append(asyncio.create_task(self._write_stdin(stdin)))

    async def _pump_stdout(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        try:
            while True:
                data = await self._process.stdout.read(READ_SIZE)
                if not data:
                    break
                await self.feed(data)
        finally:
            self.end()

    async def _drain_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        async for line in self._process.stderr:
            self.log.debug(line.decode("utf-8", errors="replace").rstrip())

    async def _write_stdin(self, data: bytes) -> None:
        assert self._process is not None and self._process.stdin is not None
        try:
            self._process.stdin.write(data)
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # ffmpeg exited before consuming its input; stderr says why
            pass
        finally:
            self._process.stdin.close()

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    async def aclose(self) -> None:
        await super().aclose()
        if self._process is not None and self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()
            await self._process.wait()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


__all__ = ["TranscodedSource", "ffmpeg_args"]

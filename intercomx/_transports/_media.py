"""
Authenticated media transport for the device's two-way-audio channel.

The device exposes three ISAPI endpoints per audio channel: ``open``,
``close`` and ``audioData``. All of them are protected by HTTP digest
authentication. The audio endpoint takes a long-lived streaming upload of
raw mu-law audio.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

import httpx

from .._cancel import CancelToken
from .._types import AuthenticationError, ConnectionError, TransportError
from .._utils import ISAPI_AUDIO, ISAPI_CLOSE, ISAPI_OPEN, logger


class MediaChannel:
    """
    Client for one device audio channel.

    A single ``httpx.DigestAuth`` instance is shared by all requests so the
    challenge obtained by ``open``/``close`` pre-authorizes the streaming
    upload, whose body cannot be replayed after a 401.

    Calls have no timeout by default: a device that hangs stalls its own
    controller until it answers.
    """

    def __init__(
        self,
        address: str,
        username: str,
        password: str,
        *,
        channel: int = 1,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        finish_timeout: float = 2.0,
        log: Optional[logging.Logger] = None,
    ) -> None:
        """
        Initialize the media channel.

        Args:
            address: Base URL of the device (e.g. http://192.168.1.20)
            username: Digest username
            password: Digest password
            channel: Two-way-audio channel number
            client: HTTP client to use; one is created (and owned) if None
            timeout: Timeout for every HTTP call, None for no timeout
            finish_timeout: How long to wait for the device to answer the
                audio upload after its body ended
            log: Logger to use
        """
        self.address = address
        self.channel = channel
        self.finish_timeout = finish_timeout
        self.log = log or logger
        self._auth = httpx.DigestAuth(username, password)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    def url(self, template: str) -> str:
        """Resolve an ISAPI path template against the device address."""
        return str(httpx.URL(self.address).join(template.format(channel=self.channel)))

    async def open(self) -> None:
        """
        Open the audio channel.

        Raises:
            TransportError: If the device could not be reached or refused
        """
        await self._put(ISAPI_OPEN)

    async def close(self) -> None:
        """
        Close the audio channel. Closing a closed channel is safe.

        Raises:
            TransportError: If the device could not be reached or refused
        """
        await self._put(ISAPI_CLOSE)

    def stream(self, token: CancelToken) -> AudioStream:
        """Start an audio upload that is aborted as soon as ``token`` fires."""
        return AudioStream(self, token)

    async def aclose(self) -> None:
        """Release the HTTP client if this channel created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _put(self, template: str) -> httpx.Response:
        url = self.url(template)
        try:
            response = await self._client.put(url, auth=self._auth)
        except httpx.HTTPError as e:
            raise ConnectionError(f"PUT {url} failed: {e}") from e
        self._check(response, url)
        return response

    async def _send_audio(self, body: AsyncIterator[bytes]) -> httpx.Response:
        url = self.url(ISAPI_AUDIO)
        try:
            response = await self._client.put(
                url,
                content=body,
                headers={
                    "Content-Type": "application/octet-stream",
                    "Connection": "keep-alive",
                },
                auth=self._auth,
            )
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise ConnectionError(f"PUT {url} failed: {e}") from e
        self._check(response, url)
        return response

    @staticmethod
    def _check(response: httpx.Response, url: str) -> None:
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"PUT {url} was rejected: {response.status_code} {response.reason_phrase}"
            )
        if not response.is_success:
            raise TransportError(
                f"PUT {url} failed: {response.status_code} {response.reason_phrase}"
            )

    def __repr__(self) -> str:
        return f"<MediaChannel({self.address}, channel={self.channel})>"


class AudioStream:
    """
    A running audio upload.

    Chunks passed to ``feed`` go through an intermediary queue that is the
    request body. Leaving the context ends the body and gives the device
    ``finish_timeout`` seconds to answer. Firing the token cancels the
    request immediately.
    """

    def __init__(self, channel: MediaChannel, token: CancelToken) -> None:
        self._channel = channel
        self._token = token
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._request: Optional[asyncio.Task] = None
        self._watcher: Optional[asyncio.Task] = None

    async def __aenter__(self) -> AudioStream:
        self._request = asyncio.create_task(self._channel._send_audio(self._body()))
        self._watcher = asyncio.create_task(self._cancel_on_token())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self._watcher is not None:
            self._watcher.cancel()
        self._queue.put_nowait(None)

        request = self._request
        if request is None:
            return False

        if not self._token.cancelled and not request.done():
            await asyncio.wait({request}, timeout=self._channel.finish_timeout)
        if not request.done():
            request.cancel()

        (result,) = await asyncio.gather(request, return_exceptions=True)
        if isinstance(result, TransportError) and exc_type is None:
            self._channel.log.warning(f"Audio upload ended with an error: {result}")
        return False

    @property
    def failed(self) -> bool:
        """True if the upload is no longer running."""
        return self._request is not None and self._request.done()

    async def feed(self, chunk: bytes) -> None:
        """
        Queue a chunk for upload.

        Raises:
            TransportError: If the upload already ended
        """
        if self._request is None:
            raise TransportError("Audio stream is not started")
        if self._request.done():
            self._raise_failure()
        self._queue.put_nowait(chunk)

    async def _body(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    async def _cancel_on_token(self) -> None:
        await self._token.wait()
        if self._request is not None and not self._request.done():
            self._request.cancel()

    def _raise_failure(self) -> None:
        assert self._request is not None
        if self._request.cancelled():
            raise TransportError("Audio upload was cancelled")
        error = self._request.exception()
        if error is not None:
            raise error
        raise TransportError("Device ended the audio upload early")

"""
UDP socket for SIP signaling.

Door stations only ever reach the gateway over UDP, and every answer goes
back to the address a request came from, so the socket deals in
(datagram, source address) pairs and nothing else.
"""

from __future__ import annotations

import asyncio
from typing import NamedTuple, Optional, Tuple

from .._types import ReadError, TransportAddress, TransportConfig, TransportError, WriteError
from .._utils import logger


class Datagram(NamedTuple):
    data: bytes
    source: TransportAddress


class SignalingSocket:
    """
    Bound UDP endpoint delivering datagrams through an asyncio queue.

    Example:
        >>> sock = SignalingSocket(TransportConfig(local_host="127.0.0.1", local_port=0))
        >>> address = await sock.bind()
        >>> datagram = await sock.recv(timeout=1.0)
        >>> sock.sendto(b"...", datagram.source)
    """

    def __init__(self, config: Optional[TransportConfig] = None) -> None:
        self.config = config or TransportConfig()
        self._endpoint: Optional[asyncio.DatagramTransport] = None
        self._inbox: Optional[_Inbox] = None
        self._closed = False

    @property
    def bound(self) -> bool:
        return self._endpoint is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def local_address(self) -> TransportAddress:
        """Bound address; the port is the real one once bound to port 0."""
        return TransportAddress(self.config.local_host, self.config.local_port)

    async def bind(self) -> TransportAddress:
        """
        Bind the socket. Binding twice is a no-op.

        Raises:
            TransportError: If the socket is closed or the address is unavailable
        """
        if self._closed:
            raise TransportError("Signaling socket is closed")
        if self._endpoint is not None:
            return self.local_address

        loop = asyncio.get_running_loop()
        try:
            self._endpoint, self._inbox = await loop.create_datagram_endpoint(
                lambda: _Inbox(self.config.buffer_size),
                local_addr=(self.config.local_host, self.config.local_port),
            )
        except OSError as e:
            raise TransportError(
                f"Cannot bind UDP {self.config.local_host}:{self.config.local_port}: {e}"
            ) from e

        self.config.local_port = self._endpoint.get_extra_info("sockname")[1]
        return self.local_address

    async def recv(self, timeout: Optional[float] = None) -> Datagram:
        """
        Wait for the next datagram.

        Raises:
            ReadError: If nothing arrived within ``timeout`` seconds
            TransportError: If the socket is not bound or was closed
        """
        inbox = self._require_inbox()
        try:
            data, (host, port) = await asyncio.wait_for(inbox.queue.get(), timeout)
        except asyncio.TimeoutError as e:
            raise ReadError(f"No datagram within {timeout}s") from e
        return Datagram(data, TransportAddress(host, port))

    def sendto(self, data: bytes, destination: TransportAddress) -> None:
        """
        Send one datagram.

        Raises:
            WriteError: If the datagram could not be handed to the OS
            TransportError: If the socket is not bound or was closed
        """
        self._require_inbox()
        assert self._endpoint is not None
        try:
            self._endpoint.sendto(data, destination.as_tuple)
        except (OSError, ValueError) as e:
            raise WriteError(f"Cannot send to {destination}: {e}") from e

    def close(self) -> None:
        if self._endpoint is not None:
            self._endpoint.close()
        self._endpoint = None
        self._inbox = None
        self._closed = True

    def _require_inbox(self) -> _Inbox:
        if self._closed or self._inbox is None:
            raise TransportError("Signaling socket is not bound")
        return self._inbox

    def __repr__(self) -> str:
        state = "closed" if self._closed else "bound" if self.bound else "unbound"
        return f"<SignalingSocket({self.local_address}, {state})>"


class _Inbox(asyncio.DatagramProtocol):
    """Queues datagrams as they arrive."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self.queue: asyncio.Queue[Tuple[bytes, Tuple[str, int]]] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        if len(data) > self.max_size:
            logger.warning(f"Dropping {len(data)} byte datagram from {addr[0]}:{addr[1]}")
            return
        self.queue.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        # ICMP port unreachable from a station that went away
        logger.debug(f"UDP error received: {exc}")


__all__ = ["Datagram", "SignalingSocket"]

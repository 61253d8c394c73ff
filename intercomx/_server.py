"""
SIP listener for the doorbell stations.

Reads datagrams off the signaling socket, hands each request to the dialog
handler and sends whatever it produces back to the datagram's source.
"""

from __future__ import annotations

from typing import Optional

from ._dialog import DialogHandler
from ._models import MessageParser
from ._transports import SignalingSocket, TransportConfig
from ._types import ParseError, ReadError, TransportAddress, TransportError
from ._utils import logger

POLL_INTERVAL = 1.0


class SIPServer:
    """
    Answers door stations on one UDP socket.

    Datagrams are handled one at a time in arrival order. The dialog
    handler never waits for playback, so a busy device cannot hold up
    signaling for the others.
    """

    def __init__(
        self,
        handler: DialogHandler,
        local_host: str = "0.0.0.0",
        local_port: int = 5060,
        config: Optional[TransportConfig] = None,
    ) -> None:
        """
        Args:
            handler: Dialog handler answering requests
            local_host: Address to listen on
            local_port: Port to listen on (0 picks a free one)
            config: Socket configuration, overrides host and port
        """
        self.handler = handler
        self.config = config or TransportConfig(local_host=local_host, local_port=local_port)
        self.log = logger.getChild("sip")
        self._socket = SignalingSocket(self.config)
        self._serving = False

    @property
    def local_address(self) -> TransportAddress:
        return self._socket.local_address

    async def start(self) -> None:
        """
        Bind the signaling socket.

        Raises:
            TransportError: If the address is unavailable
        """
        address = await self._socket.bind()
        self._serving = True
        self.log.info(f"Starting SIP server on UDP {address.host}:{address.port}")

    async def serve_forever(self) -> None:
        """Answer datagrams until stop() is called."""
        if not self._serving:
            await self.start()

        while self._serving:
            try:
                # Timeout so a stop() is seen even when the line is quiet
                datagram = await self._socket.recv(timeout=POLL_INTERVAL)
            except ReadError:
                continue
            except TransportError as e:
                if self._serving:
                    self.log.error(f"SIP socket failed: {e}")
                break

            await self.handle_datagram(datagram.data, datagram.source)

    async def handle_datagram(self, data: bytes, source: TransportAddress) -> None:
        """Answer one datagram. Responses and malformed requests are dropped."""
        if MessageParser.is_response(data):
            self.log.debug(f"Ignoring response from {source}")
            return

        try:
            request = MessageParser.parse_request(data)
            self.log.debug(f"Incoming {request.method} message from {source}:\n{request}")
            messages = await self.handler.handle(request, source)
        except ParseError as e:
            self.log.warning(f"Dropping message from {source}: {e}")
            return
        except Exception as e:
            self.log.error(f"Error handling message from {source}: {e}", exc_info=True)
            return

        for message in messages:
            self.log.debug(f"Sending to {source}:\n{message}")
            try:
                self._socket.sendto(message.to_bytes(), source)
            except TransportError as e:
                self.log.error(f"Failed to send reply to {source}: {e}")

    async def stop(self) -> None:
        if not self._serving:
            return
        self._serving = False
        self._socket.close()
        self.log.info("SIP server stopped")

    async def __aenter__(self) -> SIPServer:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.stop()
        return False


__all__ = ["SIPServer"]

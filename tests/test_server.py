from __future__ import annotations

import asyncio

import pytest

from intercomx import (
    DialogHandler,
    MessageParser,
    ReadError,
    SignalingSocket,
    SIPServer,
    TransportConfig,
    TransportError,
)

INVITE = (
    "INVITE sip:gateway@127.0.0.1 SIP/2.0\r\n"
    "Via: SIP/2.0/UDP 127.0.0.1;branch=z9hG4bK-77;rport\r\n"
    "From: <sip:front@127.0.0.1>;tag=1\r\n"
    "To: <sip:gateway@127.0.0.1>\r\n"
    "Call-ID: abc@127.0.0.1\r\n"
    "CSeq: 1 INVITE\r\n"
    "Content-Length: 0\r\n"
    "\r\n"
)


class FakeDevice:
    def __init__(self) -> None:
        self.triggers = 0

    def trigger(self) -> None:
        self.triggers += 1


class Peer(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.received: asyncio.Queue[bytes] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr) -> None:
        self.received.put_nowait(data)


async def exchange(datagrams: list[bytes], expected: int) -> tuple[list[bytes], FakeDevice]:
    device = FakeDevice()
    server = SIPServer(DialogHandler({"front": device}), local_host="127.0.0.1", local_port=0)
    await server.start()
    serving = asyncio.create_task(server.serve_forever())

    loop = asyncio.get_running_loop()
    transport, peer = await loop.create_datagram_endpoint(
        Peer, remote_addr=("127.0.0.1", server.local_address.port)
    )
    try:
        for data in datagrams:
            transport.sendto(data)
        replies = [
            await asyncio.wait_for(peer.received.get(), timeout=2) for _ in range(expected)
        ]
        await asyncio.sleep(0.05)
        assert peer.received.empty()
    finally:
        transport.close()
        await server.stop()
        await asyncio.wait_for(serving, timeout=3)
    return replies, device


def test_invite_is_answered_over_udp():
    replies, device = asyncio.run(exchange([INVITE.encode()], expected=3))

    status_lines = [reply.split(b"\r\n", 1)[0] for reply in replies]
    assert status_lines == [
        b"SIP/2.0 100 Trying",
        b"SIP/2.0 183 Session Progress",
        b"SIP/2.0 200 OK",
    ]
    assert b"received=127.0.0.1" in replies[0]
    assert device.triggers == 1


def test_malformed_and_responses_are_dropped():
    datagrams = [
        b"not a sip message",
        b"SIP/2.0 200 OK\r\nCall-ID: x\r\n\r\n",
        INVITE.replace("From: <sip:front@127.0.0.1>", "From: <sip:127.0.0.1>").encode(),
        INVITE.replace("INVITE sip", "ACK sip", 1).encode(),
    ]
    replies, device = asyncio.run(exchange(datagrams, expected=1))

    (bye,) = replies
    request = MessageParser.parse_request(bye)
    assert request.method == "BYE"
    assert request.cseq == "10 BYE"
    assert device.triggers == 0


def test_signaling_socket_lifecycle():
    async def scenario():
        sock = SignalingSocket(TransportConfig(local_host="127.0.0.1", local_port=0))
        with pytest.raises(TransportError):
            await sock.recv(timeout=0.01)

        address = await sock.bind()
        assert address.port != 0
        assert await sock.bind() == address
        with pytest.raises(ReadError):
            await sock.recv(timeout=0.01)

        sock.close()
        assert sock.closed
        with pytest.raises(TransportError):
            await sock.bind()
        with pytest.raises(TransportError):
            sock.sendto(b"x", address)

    asyncio.run(scenario())


class FlakyHandler:
    """Fails on the first request, then answers like the real handler."""

    def __init__(self, inner: DialogHandler) -> None:
        self.inner = inner
        self.calls = 0

    async def handle(self, request, source):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("handler blew up")
        return await self.inner.handle(request, source)


def test_handler_error_does_not_end_serving():
    async def scenario():
        device = FakeDevice()
        handler = FlakyHandler(DialogHandler({"front": device}))
        server = SIPServer(handler, local_host="127.0.0.1", local_port=0)
        await server.start()
        serving = asyncio.create_task(server.serve_forever())

        loop = asyncio.get_running_loop()
        transport, peer = await loop.create_datagram_endpoint(
            Peer, remote_addr=("127.0.0.1", server.local_address.port)
        )
        try:
            transport.sendto(INVITE.encode())
            transport.sendto(INVITE.encode())
            replies = [
                await asyncio.wait_for(peer.received.get(), timeout=2) for _ in range(3)
            ]
            still_serving = not serving.done()
        finally:
            transport.close()
            await server.stop()
            await asyncio.wait_for(serving, timeout=3)
        return replies, still_serving, handler.calls, device.triggers

    replies, still_serving, calls, triggers = asyncio.run(scenario())
    assert still_serving
    assert calls == 2
    assert triggers == 1
    assert replies[0].startswith(b"SIP/2.0 100 Trying")

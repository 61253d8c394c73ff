from __future__ import annotations

import asyncio

import pytest

from intercomx import (
    DialogHandler,
    MessageParser,
    ParseError,
    Request,
    Response,
    TransportAddress,
    extract_branch,
    extract_identity,
)

SOURCE = TransportAddress("192.168.1.20", 5062)
BRANCH = "z9hG4bK-524287-1"


class FakeDevice:
    def __init__(self) -> None:
        self.triggers = 0

    def trigger(self) -> None:
        self.triggers += 1


def make_request(method: str, **overrides) -> Request:
    headers = {
        "Via": f"SIP/2.0/UDP 192.168.1.20:5062;branch={BRANCH};rport",
        "From": '"Front" <sip:front@192.168.1.10>;tag=abc',
        "To": "<sip:front@192.168.1.10>",
        "Call-ID": "call-1@192.168.1.20",
        "CSeq": f"1 {method}",
        "Content-Length": "0",
    }
    headers.update(overrides)
    return Request(method, "sip:192.168.1.10", headers=headers)


def handle(handler: DialogHandler, request: Request):
    return asyncio.run(handler.handle(request, SOURCE))


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def handler(device) -> DialogHandler:
    return DialogHandler({"front": device})


def test_extract_identity():
    assert extract_identity("<sip:front@192.168.1.10:5060>;tag=1") == "front"
    assert extract_identity('"Door" <sip:1001@pbx>') == "1001"


@pytest.mark.parametrize("header", [None, "<sip:192.168.1.10>", "tel:+41441234567"])
def test_extract_identity_rejects(header):
    with pytest.raises(ParseError):
        extract_identity(header)


def test_extract_branch():
    assert extract_branch(f"SIP/2.0/UDP 10.0.0.2;branch={BRANCH};rport") == BRANCH
    with pytest.raises(ParseError):
        extract_branch("SIP/2.0/UDP 10.0.0.2;rport")
    with pytest.raises(ParseError):
        extract_branch(None)


def test_register_reply(handler):
    (reply,) = handle(handler, make_request("REGISTER"))

    assert isinstance(reply, Response)
    assert reply.status == "200 OK"
    assert reply.headers["Contact"] == "<sip:front@192.168.1.20:5062;transport=udp>;expires=3600"
    assert reply.via == (
        f"SIP/2.0/UDP 192.168.1.20:5062;rport=5062;received=192.168.1.20;branch={BRANCH}"
    )
    assert reply.to_header == f"<sip:front@192.168.1.10>;tag={BRANCH}"
    assert reply.from_header == '"Front" <sip:front@192.168.1.10>;tag=abc'
    assert reply.call_id == "call-1@192.168.1.20"
    assert reply.cseq == "1 REGISTER"
    assert reply.headers["Server"] == "Asterisk PBX 18.14.0"
    assert reply.headers["Content-Length"] == "0"
    # Extra headers come last
    assert list(reply.headers)[-1] == "Contact"


def test_register_unknown_device_still_replies():
    handler = DialogHandler({})
    (reply,) = handle(handler, make_request("REGISTER", To="<sip:back@192.168.1.10>"))
    assert reply.status_code == 200
    assert "sip:back@192.168.1.20:5062" in reply.headers["Contact"]


def test_invite_replies_and_triggers_once(handler, device):
    replies = handle(handler, make_request("INVITE"))

    assert [reply.status for reply in replies] == [
        "100 Trying",
        "183 Session Progress",
        "200 OK",
    ]
    trying, progress, ok = replies
    assert trying.body is None
    assert trying.headers["Content-Length"] == "0"
    for reply in (progress, ok):
        assert reply.headers["Content-Type"] == "application/sdp"
        assert reply.headers["Contact"] == "<sip:192.168.1.20:5062>"
        assert reply.body.startswith("v=0\r\n")
        assert "c=IN IP4 192.168.1.20\r\n" in reply.body
        assert reply.headers["Content-Length"] == str(len(reply.body.encode()))
    assert progress.body == ok.body
    assert device.triggers == 1


def test_invite_unknown_device(device):
    handler = DialogHandler({"back": device})
    replies = handle(handler, make_request("INVITE"))
    assert [reply.status_code for reply in replies] == [100, 183, 200]
    assert device.triggers == 0


def test_invite_identity_mismatch_is_parse_error(handler, device):
    with pytest.raises(ParseError):
        handle(handler, make_request("INVITE", From="<sip:192.168.1.20>"))
    assert device.triggers == 0


def test_invite_without_branch_triggers_nothing(handler, device):
    with pytest.raises(ParseError):
        handle(handler, make_request("INVITE", Via="SIP/2.0/UDP 192.168.1.20:5062"))
    assert device.triggers == 0


def test_ack_sends_bye(handler):
    (bye,) = handle(handler, make_request("ACK"))

    assert isinstance(bye, Request)
    assert bye.method == "BYE"
    assert bye.uri == "sip:192.168.1.20:5062"
    assert bye.via == f"SIP/2.0/UDP 192.168.1.20:5062;branch={BRANCH};rport"
    assert bye.from_header == "<sip:front@192.168.1.10>"
    assert bye.to_header == '"Front" <sip:front@192.168.1.10>;tag=abc'
    assert bye.cseq == "10 BYE"
    assert bye.headers["Max-Forwards"] == "70"
    assert bye.headers["User-Agent"] == "Asterisk PBX 18.14.0"
    assert bye.headers["Content-Length"] == "0"
    assert MessageParser.parse_request(bye.to_bytes()).call_id == "call-1@192.168.1.20"


def test_bye_replies_ok(handler):
    (reply,) = handle(handler, make_request("BYE"))
    assert reply.status == "200 OK"
    assert reply.cseq == "1 BYE"


def test_other_methods_are_dropped(handler, device):
    assert handle(handler, make_request("OPTIONS")) == []
    assert handle(handler, make_request("CANCEL")) == []
    assert device.triggers == 0


def test_custom_user_agent(device):
    handler = DialogHandler({"front": device}, user_agent="gw/1.0")
    (reply,) = handle(handler, make_request("BYE"))
    (bye,) = handle(handler, make_request("ACK"))
    assert reply.headers["Server"] == "gw/1.0"
    assert bye.headers["User-Agent"] == "gw/1.0"

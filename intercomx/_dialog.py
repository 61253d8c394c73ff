"""
Signaling dialog handler.

Doorbell stations register with the gateway and call it when their button
is pressed. The gateway does not hold real dialogs: every request is
answered from its own headers alone.

  REGISTER  -> 200 OK (Contact echoes the device's source address)
  INVITE    -> 100 Trying, 183 Session Progress + SDP, 200 OK + SDP
               and the device's button press is triggered
  ACK       -> BYE sent back to the caller (the call is never kept up)
  BYE       -> 200 OK
  other     -> dropped
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Mapping, Optional

from ._models import HeaderParser, Method, Request, Response, SIPMessage
from ._sdp import CONTENT_TYPE, build_audio_answer
from ._types import ParseError, TransportAddress
from ._utils import REASON_PHRASES, REGISTER_EXPIRES, USER_AGENT, logger

_IDENTITY = re.compile(r"sip:([^@]+)@[^>]+")
_SIP_URI = re.compile(r"(sip:[^>]+)")


# ============================================================================
# Header helpers
# ============================================================================


def extract_identity(header: Optional[str]) -> str:
    """
    Extract the user part of the first ``sip:user@host`` URI in a header.

    Example:
        >>> extract_identity('"Door" <sip:front@192.168.1.20:5060>;tag=1')
        'front'

    Raises:
        ParseError: If the header is missing or holds no such URI
    """
    if header is None:
        raise ParseError("Missing identity header")
    match = _IDENTITY.search(header)
    if match is None:
        raise ParseError(f"No SIP identity in {header!r}")
    return match.group(1)


def extract_branch(via: Optional[str]) -> str:
    """
    Return the ``branch`` parameter of a Via header.

    Raises:
        ParseError: If the Via header or its branch is missing
    """
    if via is None:
        raise ParseError("Missing Via header")
    branch = HeaderParser.parse_params(via).get("branch")
    if not branch:
        raise ParseError(f"Via header has no branch: {via!r}")
    return branch


def _required(request: Request, name: str) -> str:
    value = request.headers.get(name)
    if value is None:
        raise ParseError(f"Missing {name} header")
    return value


def _content_length(body: Optional[str]) -> str:
    return str(len(body.encode("utf-8"))) if body else "0"


# ============================================================================
# Message builders
# ============================================================================


def build_reply(
    request: Request,
    source: TransportAddress,
    status: int,
    extra_headers: Optional[Mapping[str, Optional[str]]] = None,
    body: Optional[str] = None,
    *,
    user_agent: str = USER_AGENT,
) -> Response:
    """
    Build a reply to ``request`` addressed back to ``source``.

    The To tag is the request's Via branch, which is unique per call
    attempt and good enough for peers that never send a second request.

    Raises:
        ParseError: If a header the reply is built from is missing
    """
    branch = extract_branch(request.via)
    to_uri = _SIP_URI.search(_required(request, "To"))
    if to_uri is None:
        raise ParseError(f"No SIP URI in To header: {request.to_header!r}")

    headers = {
        "Via": (
            f"{request.version}/UDP {source.host}:{source.port}"
            f";rport={source.port};received={source.host};branch={branch}"
        ),
        "Call-ID": request.call_id,
        "From": request.from_header,
        "To": f"<{to_uri.group(1)}>;tag={branch}",
        "CSeq": request.cseq,
        "Server": user_agent,
        "Content-Length": _content_length(body),
    }
    headers.update(extra_headers or {})

    return Response(
        f"{status} {REASON_PHRASES.get(status, '')}".rstrip(),
        headers=headers,
        body=body,
        version=request.version,
    )


def build_bye(
    request: Request,
    source: TransportAddress,
    *,
    user_agent: str = USER_AGENT,
) -> Request:
    """
    Build a BYE ending the call ``request`` belongs to.

    From and To are swapped since the gateway is the callee.

    Raises:
        ParseError: If the Via branch is missing
    """
    branch = extract_branch(request.via)
    return Request(
        Method.BYE.value,
        f"sip:{source.host}:{source.port}",
        headers={
            "Via": f"{request.version}/UDP {source.host}:{source.port};branch={branch};rport",
            "Call-ID": request.call_id,
            "From": request.to_header,
            "To": request.from_header,
            "CSeq": f"10 {Method.BYE.value}",
            "Max-Forwards": "70",
            "User-Agent": user_agent,
            "Content-Length": "0",
        },
        version=request.version,
    )


# ============================================================================
# Dialog Handler
# ============================================================================


class DialogHandler:
    """
    Answers the requests doorbell stations send.

    Args:
        registry: Devices by SIP user name; each must provide ``trigger()``
        user_agent: Value of the Server/User-Agent headers
        log: Logger to use
    """

    def __init__(
        self,
        registry: Mapping[str, Any],
        *,
        user_agent: str = USER_AGENT,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.registry = registry
        self.user_agent = user_agent
        self.log = log or logger.getChild("sip")

    async def handle(self, request: Request, source: TransportAddress) -> List[SIPMessage]:
        """
        Handle one request.

        Returns:
            Messages to send back to ``source``, in order

        Raises:
            ParseError: If a header the answer depends on is missing or
                carries no SIP identity
        """
        kind = request.kind
        if kind is Method.REGISTER:
            return self._on_register(request, source)
        if kind is Method.INVITE:
            return self._on_invite(request, source)
        if kind is Method.ACK:
            return [build_bye(request, source, user_agent=self.user_agent)]
        if kind is Method.BYE:
            return [self._reply(request, source, 200)]

        self.log.debug(f"Ignoring {request.method} from {source}")
        return []

    def _reply(self, request: Request, source: TransportAddress, status: int, *args) -> Response:
        return build_reply(request, source, status, *args, user_agent=self.user_agent)

    def _on_register(self, request: Request, source: TransportAddress) -> List[SIPMessage]:
        user = extract_identity(request.to_header)
        if user in self.registry:
            self.log.info(f"Doorbell with username {user} registered")
        else:
            self.log.warning(
                f"Doorbell with username {user} attempted REGISTER but not found (check config)"
            )

        contact = f"<sip:{user}@{source.host}:{source.port};transport=udp>;expires={REGISTER_EXPIRES}"
        return [self._reply(request, source, 200, {"Contact": contact})]

    def _on_invite(self, request: Request, source: TransportAddress) -> List[SIPMessage]:
        user = extract_identity(request.from_header)

        # Build every reply before acting so a malformed INVITE triggers nothing
        sdp = build_audio_answer(source.host).to_string()
        media_headers = {
            "Contact": f"<sip:{source.host}:{source.port}>",
            "Content-Type": CONTENT_TYPE,
        }
        replies: List[SIPMessage] = [
            self._reply(request, source, 100),
            self._reply(request, source, 183, media_headers, sdp),
            self._reply(request, source, 200, media_headers, sdp),
        ]

        device = self.registry.get(user)
        if device is not None:
            device.trigger()
        else:
            self.log.warning(f"Doorbell with username {user} pressed but not found!")

        return replies


__all__ = [
    "DialogHandler",
    "build_bye",
    "build_reply",
    "extract_branch",
    "extract_identity",
]

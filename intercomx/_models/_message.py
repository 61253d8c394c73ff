"""
SIP Message models (Request and Response) and Parser.

Provides SIP message creation, serialization and strict request parsing for
the line-oriented wire format spoken by intercom devices.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from .._types import ParseError
from .._utils import EOL, SCHEME, VERSION
from ._header import Headers, HeaderParser, HeaderTypes


# ============================================================================
# Methods
# ============================================================================


class Method(str, Enum):
    """SIP methods the dialog handler knows how to answer."""

    REGISTER = "REGISTER"
    INVITE = "INVITE"
    ACK = "ACK"
    BYE = "BYE"
    UNKNOWN = ""

    @classmethod
    def from_token(cls, token: str) -> Method:
        """Map a request-line method token to a Method (UNKNOWN if unsupported)."""
        try:
            method = cls(token)
        except ValueError:
            return cls.UNKNOWN
        return method


# ============================================================================
# Base Class
# ============================================================================


class SIPMessage:
    """
    Base class for SIP messages.

    Holds the headers and optional text body and exposes the common dialog
    headers as properties.
    """

    __slots__ = ("_headers", "_body")

    def __init__(self, headers: HeaderTypes | None, body: Optional[str]) -> None:
        self._headers = headers if isinstance(headers, Headers) else Headers(headers)
        self._body = body if body else None

    @property
    def headers(self) -> Headers:
        """Return the message headers."""
        return self._headers

    @property
    def body(self) -> Optional[str]:
        """Return the message body text, if any."""
        return self._body

    @property
    def via(self) -> Optional[str]:
        """Return Via header."""
        return self._headers.get("Via")

    @property
    def from_header(self) -> Optional[str]:
        """Return From header."""
        return self._headers.get("From")

    @property
    def to_header(self) -> Optional[str]:
        """Return To header."""
        return self._headers.get("To")

    @property
    def call_id(self) -> Optional[str]:
        """Return Call-ID header."""
        return self._headers.get("Call-ID")

    @property
    def cseq(self) -> Optional[str]:
        """Return CSeq header."""
        return self._headers.get("CSeq")

    def _start_line(self) -> str:
        raise NotImplementedError

    def to_string(self) -> str:
        """Serialize message to its wire text."""
        return self._start_line() + EOL + self._headers.raw() + EOL + (self._body or "")

    def to_bytes(self) -> bytes:
        """Serialize message to bytes (wire format)."""
        return self.to_string().encode("utf-8")

    def __str__(self) -> str:
        return self.to_string()


# ============================================================================
# Request Implementation
# ============================================================================


class Request(SIPMessage):
    """
    SIP Request message.

    Requests are immutable once built: the start line fields are read-only
    and the parser never mutates the headers it produces.
    """

    __slots__ = ("_method", "_uri", "_version")

    def __init__(
        self,
        method: str,
        uri: str,
        *,
        headers: HeaderTypes | None = None,
        body: Optional[str] = None,
        version: Optional[str] = None,
    ) -> None:
        super().__init__(headers, body)
        self._method = method
        self._uri = uri
        self._version = version if version else f"{SCHEME}/{VERSION}"

    @property
    def method(self) -> str:
        """Return the raw method token."""
        return self._method

    @property
    def kind(self) -> Method:
        """Return the method as a Method member (UNKNOWN if unsupported)."""
        return Method.from_token(self._method)

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def version(self) -> str:
        return self._version

    def _start_line(self) -> str:
        return f"{self._method} {self._uri} {self._version}"

    def __repr__(self) -> str:
        return f"<Request({self._method!r}, {self._uri!r})>"


# ============================================================================
# Response Implementation
# ============================================================================


class Response(SIPMessage):
    """
    SIP Response message.

    Built per reply and never reused. The status is kept as its full text
    ("183 Session Progress") since the gateway always answers with fixed
    status lines.
    """

    __slots__ = ("status", "version")

    def __init__(
        self,
        status: str,
        *,
        headers: HeaderTypes | None = None,
        body: Optional[str] = None,
        version: Optional[str] = None,
    ) -> None:
        super().__init__(headers, body)
        self.status = status
        self.version = version if version else f"{SCHEME}/{VERSION}"

    @property
    def status_code(self) -> int:
        """Return the numeric status code."""
        return int(self.status.split(" ", 1)[0])

    @property
    def reason_phrase(self) -> str:
        """Return the reason phrase part of the status."""
        parts = self.status.split(" ", 1)
        return parts[1] if len(parts) > 1 else ""

    def _start_line(self) -> str:
        return f"{self.version} {self.status}"

    def to_string(self) -> str:
        """Serialize response to its wire text, with a trailing CRLF after the body."""
        return super().to_string() + EOL

    def __repr__(self) -> str:
        return f"<Response [{self.status}]>"


# ============================================================================
# Message Parser
# ============================================================================


class MessageParser:
    """
    Strict SIP request parser.

    The protocol is line-structured: a malformed line fails the whole
    message with ParseError, there is no partial-success mode.
    """

    @staticmethod
    def is_response(data: bytes | str) -> bool:
        """Return True if the data starts with a status line (SIP/x.y ...)."""
        if isinstance(data, bytes):
            data = data[:16].decode("utf-8", errors="replace")
        return data.startswith(f"{SCHEME}/")

    @staticmethod
    def parse_request(data: bytes | str) -> Request:
        """
        Parse a SIP request from bytes or string.

        Args:
            data: Raw SIP request

        Returns:
            Request object

        Raises:
            ParseError: If the request line or a header line is invalid

        Example:
            >>> data = "BYE sip:10.0.0.2:5060 SIP/2.0\\r\\nCall-ID: abc\\r\\n\\r\\n"
            >>> MessageParser.parse_request(data).call_id
            'abc'
        """
        if isinstance(data, bytes):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError(f"Message is not valid UTF-8: {e}") from e

        if not data:
            raise ParseError("Empty SIP message")

        if MessageParser.is_response(data):
            raise ParseError("Expected a request but got a response")

        separator = EOL + EOL
        if separator in data:
            head, body = data.split(separator, 1)
        else:
            head, body = data.rstrip(EOL), ""

        lines = head.split(EOL)
        parts = lines[0].split(" ")
        if len(parts) != 3 or not all(parts):
            raise ParseError(f"Invalid request line: {lines[0]!r}")

        method, uri, version = parts
        headers = HeaderParser.parse_lines(lines[1:])

        return Request(method, uri, version=version, headers=headers, body=body or None)


__all__ = [
    "Method",
    "SIPMessage",
    "Request",
    "Response",
    "MessageParser",
]

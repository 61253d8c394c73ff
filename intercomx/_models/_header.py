"""
SIP Headers implementation.

Provides an order-preserving headers container with exact-case names and a
strict HeaderParser for the line-oriented header block.
"""

from __future__ import annotations

import typing
from collections.abc import Mapping

from .._types import ParseError
from .._utils import EOL

HeaderTypes = typing.Union["Headers", Mapping[str, typing.Optional[str]]]


# ============================================================================
# Headers Implementation
# ============================================================================


class Headers(typing.MutableMapping[str, typing.Optional[str]]):
    """Exact-case SIP headers preserving insertion order.

    Header names are matched exactly as written: ``"Call-ID"`` and
    ``"call-id"`` are different keys. Setting an existing name replaces its
    value in place (last wins, first position kept).

    A header may hold ``None``; such headers are kept in the mapping but are
    never serialized.

    Examples:
        >>> h = Headers({"Via": "SIP/2.0/UDP 10.0.0.2:5060", "Server": None})
        >>> h.to_lines()
        ['Via: SIP/2.0/UDP 10.0.0.2:5060']
    """

    __slots__ = ("_store",)

    def __init__(self, headers: HeaderTypes | None = None) -> None:
        self._store: dict[str, typing.Optional[str]] = {}

        if isinstance(headers, Headers):
            self._store = headers._store.copy()
        elif isinstance(headers, Mapping):
            for key, value in headers.items():
                self[key] = value
        elif headers is not None:
            raise TypeError("headers must be Headers or Mapping")

    def __getitem__(self, key: str) -> typing.Optional[str]:
        return self._store[key]

    def __setitem__(self, key: str, value: typing.Optional[str]) -> None:
        self._store[key] = None if value is None else str(value)

    def __delitem__(self, key: str) -> None:
        del self._store[key]

    def __iter__(self) -> typing.Iterator[str]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return list(self._store.items()) == list(other._store.items())
        if isinstance(other, Mapping):
            return dict(self._store) == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {v!r}" for k, v in self._store.items())
        return f"Headers({{{items}}})"

    def copy(self) -> Headers:
        """Create a copy of this Headers instance."""
        return Headers(self)

    def to_lines(self) -> list[str]:
        """Convert headers to 'Name: Value' strings, skipping absent values."""
        return [
            f"{name}: {value}" for name, value in self._store.items() if value is not None
        ]

    def raw(self) -> str:
        """
        Serialize headers to the wire format.

        Returns:
            Every header line terminated by CRLF, or an empty string
        """
        return "".join(line + EOL for line in self.to_lines())


# ============================================================================
# Header Parser
# ============================================================================


class HeaderParser:
    """
    Parser for SIP header lines.

    The gateway only talks to a single kind of peer, so the parser is
    strict: every line must be ``Name: Value``. Folded lines and compact
    forms are not supported.
    """

    @staticmethod
    def parse_lines(header_lines: list[str]) -> Headers:
        """
        Parse headers from a list of header lines.

        Args:
            header_lines: Lines between the start line and the blank separator

        Returns:
            Headers instance

        Raises:
            ParseError: If a line is not a valid header line
        """
        headers = Headers()
        for line in header_lines:
            name, sep, value = line.partition(":")
            name = name.strip()
            if not sep or not name or any(c.isspace() for c in name):
                raise ParseError(f"Invalid header line: {line!r}")
            headers[name] = value.strip()
        return headers

    @staticmethod
    def parse_params(value: str) -> dict[str, str]:
        """
        Parse ``;key=value`` parameters out of a header value.

        Example:
            >>> HeaderParser.parse_params("SIP/2.0/UDP 10.0.0.2;branch=z9hG4bK1;rport")
            {'branch': 'z9hG4bK1'}

        Args:
            value: Header value string

        Returns:
            Dictionary of the parameters that carry a value
        """
        params: dict[str, str] = {}
        for part in value.split(";")[1:]:
            if "=" not in part:
                continue
            key, val = part.split("=", 1)
            params[key.strip()] = val.strip()
        return params


__all__ = [
    "HeaderTypes",
    "Headers",
    "HeaderParser",
]

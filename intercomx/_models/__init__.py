"""
SIP Models Package.

This package contains models for SIP messages and headers.
"""

from ._header import HeaderParser, Headers, HeaderTypes
from ._message import MessageParser, Method, Request, Response, SIPMessage

__all__ = [
    # Headers
    "Headers",
    "HeaderParser",
    "HeaderTypes",
    # Messages - Base classes
    "SIPMessage",
    # Messages - Implementations
    "Method",
    "Request",
    "Response",
    # Messages - Parser
    "MessageParser",
]

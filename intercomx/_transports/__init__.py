"""
Transport layer.

This package provides the two transports the gateway uses:
- UDP: the SIP signaling socket
- Media: the device's digest-authenticated HTTP audio channel
"""

from .._types import (
    AuthenticationError,
    ConnectionError,
    ReadError,
    TransportAddress,
    TransportConfig,
    TransportError,
    WriteError,
)
from ._media import AudioStream, MediaChannel
from ._udp import Datagram, SignalingSocket

__all__ = [
    # Configuration
    "TransportConfig",
    "TransportAddress",
    # Implementations
    "SignalingSocket",
    "Datagram",
    "MediaChannel",
    "AudioStream",
    # Exceptions
    "TransportError",
    "ConnectionError",
    "AuthenticationError",
    "ReadError",
    "WriteError",
]

"""
Type definitions and exceptions for the intercom gateway.

This module centralizes the error taxonomy, the audio session states and
the transport address type shared by the signaling and media layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


# =============================================================================
# Transport Configuration
# =============================================================================


@dataclass
class TransportConfig:
    """Where the signaling socket listens."""

    local_host: str = "0.0.0.0"
    local_port: int = 5060

    # Larger datagrams are dropped
    buffer_size: int = 65535


# =============================================================================
# Transport Address
# =============================================================================


@dataclass(frozen=True)
class TransportAddress:
    """Address of a SIP peer as observed on the socket."""

    host: str
    port: int = 5060
    protocol: str = "UDP"

    def __str__(self) -> str:
        return f"{self.protocol.upper()}:{self.host}:{self.port}"

    @property
    def as_tuple(self) -> tuple[str, int]:
        """Return (host, port) as accepted by socket APIs."""
        return (self.host, self.port)


# =============================================================================
# Audio Session States
# =============================================================================


class StreamState(Enum):
    """
    States of a device's outbound audio session.

    STOPPED → PLAYING → STOPPING → STOPPED
                      ↘ RESTARTING → STOPPED → PLAYING
    """

    STOPPED = auto()
    STOPPING = auto()
    RESTARTING = auto()
    PLAYING = auto()


# =============================================================================
# Exceptions
# =============================================================================


class IntercomError(Exception):
    """Base exception for all gateway errors."""

    pass


class ParseError(IntercomError, ValueError):
    """Raised when a signaling message is malformed or lacks a required field."""

    pass


class ConfigError(IntercomError):
    """Raised when the configuration file is invalid."""

    pass


class TransportError(IntercomError):
    """Base exception for transport errors."""

    pass


class ConnectionError(TransportError):
    """Raised when a device or peer cannot be reached."""

    pass


class AuthenticationError(TransportError):
    """Raised when the device rejects our credentials."""

    pass


class WriteError(TransportError):
    """Raised when writing to a transport fails."""

    pass


class ReadError(TransportError):
    """Raised when reading from a transport fails."""

    pass


class StateConsistencyError(IntercomError):
    """
    Raised when a controller does not observe STOPPED after awaiting the
    previous playback's completion.

    This means two transitions overlapped for the same device.
    """

    pass


class PlaybackCancelled(Exception):
    """Signals that a playback's cancellation token fired. Not a failure."""

    pass


__all__ = [
    "TransportConfig",
    "TransportAddress",
    "StreamState",
    "IntercomError",
    "ParseError",
    "ConfigError",
    "TransportError",
    "ConnectionError",
    "AuthenticationError",
    "WriteError",
    "ReadError",
    "StateConsistencyError",
    "PlaybackCancelled",
]

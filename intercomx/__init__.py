"""intercomx - SIP and audio gateway for intercom door stations."""

from __future__ import annotations

__version__ = "0.1.0"

# Message codec
from ._models import Headers, HeaderParser, MessageParser, Method, Request, Response, SIPMessage
from ._sdp import SessionDescription, build_audio_answer

# Signaling
from ._dialog import DialogHandler, build_bye, build_reply, extract_branch, extract_identity
from ._server import SIPServer

# Audio
from ._cancel import CancelToken
from ._session import AudioSessionController
from ._streaming import BufferSource, ChunkSource, PipeSource, pace, packet_interval
from ._transcoder import TranscodedSource
from ._transports import AudioStream, MediaChannel, SignalingSocket

# Devices and integrations
from ._admin import create_app
from ._config import (
    DeviceConfig,
    GatewayConfig,
    MqttConfig,
    ServerConfig,
    load_config,
    parse_config,
)
from ._device import DeviceRegistry, Intercom
from ._presence import PresencePublisher

# Types and errors
from ._types import (
    AuthenticationError,
    ConfigError,
    ConnectionError,
    IntercomError,
    ParseError,
    PlaybackCancelled,
    ReadError,
    StateConsistencyError,
    StreamState,
    TransportAddress,
    TransportConfig,
    TransportError,
    WriteError,
)
from ._utils import configure_logging

__all__ = [
    "__version__",
    # Message codec
    "Headers",
    "HeaderParser",
    "MessageParser",
    "Method",
    "Request",
    "Response",
    "SIPMessage",
    "SessionDescription",
    "build_audio_answer",
    # Signaling
    "DialogHandler",
    "build_bye",
    "build_reply",
    "extract_branch",
    "extract_identity",
    "SIPServer",
    # Audio
    "CancelToken",
    "AudioSessionController",
    "BufferSource",
    "ChunkSource",
    "PipeSource",
    "pace",
    "packet_interval",
    "TranscodedSource",
    "SignalingSocket",
    "AudioStream",
    "MediaChannel",
    # Devices and integrations
    "create_app",
    "DeviceConfig",
    "GatewayConfig",
    "MqttConfig",
    "ServerConfig",
    "load_config",
    "parse_config",
    "DeviceRegistry",
    "Intercom",
    "PresencePublisher",
    # Types and errors
    "AuthenticationError",
    "ConfigError",
    "ConnectionError",
    "IntercomError",
    "ParseError",
    "PlaybackCancelled",
    "ReadError",
    "StateConsistencyError",
    "StreamState",
    "TransportAddress",
    "TransportConfig",
    "TransportError",
    "WriteError",
    "configure_logging",
]

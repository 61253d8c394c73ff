"""Utilities and constants for the intercom gateway."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

# Rich Console for pretty printing
console = Console()

# Get logger for the package
logger = logging.getLogger("intercomx")

EOL = "\r\n"
SCHEME = "SIP"
VERSION = "2.0"

# Some door stations only accept calls from a PBX they recognise
USER_AGENT = "Asterisk PBX 18.14.0"

REGISTER_EXPIRES = 3600
SETTLE_DELAY = 1.0

# Device ISAPI endpoints for the two-way-audio channel
ISAPI_CHANNEL = "/ISAPI/System/TwoWayAudio/channels/{channel}"
ISAPI_OPEN = ISAPI_CHANNEL + "/open"
ISAPI_CLOSE = ISAPI_CHANNEL + "/close"
ISAPI_AUDIO = ISAPI_CHANNEL + "/audioData"

# Reason phrases for the replies this gateway sends
REASON_PHRASES = {
    100: "Trying",
    183: "Session Progress",
    200: "OK",
    503: "Service Unavailable",
}


def configure_logging(level: int | str = logging.INFO) -> None:
    """
    Configure root logging with a RichHandler bound to the shared console.

    Args:
        level: Log level name or number
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    logger.setLevel(level)

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from ._utils import EOL

CONTENT_TYPE = "application/sdp"


@dataclass(slots=True)
class SessionDescription:
    """Ordered SDP lines kept as (type, value) pairs.

    Order is significant: peers read some lines positionally, so the pairs
    are serialized exactly as given and the first one must be ``v``.
    """

    fields: List[Tuple[str, str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        for kind, _ in self.fields:
            if len(kind) != 1:
                raise ValueError(f"Invalid SDP line type: {kind!r}")
        if self.fields and self.fields[0][0] != "v":
            raise ValueError("SDP must start with a protocol version (v=) line")

    def add(self, kind: str, value: str) -> SessionDescription:
        if len(kind) != 1:
            raise ValueError(f"Invalid SDP line type: {kind!r}")
        if not self.fields and kind != "v":
            raise ValueError("SDP must start with a protocol version (v=) line")
        self.fields.append((kind, value))
        return self

    def to_string(self) -> str:
        return "".join(f"{kind}={value}{EOL}" for kind, value in self.fields)

    def __str__(self) -> str:
        return self.to_string()


# Codecs advertised in the answer, as (payload type, rtpmap)
AUDIO_CODECS: Sequence[Tuple[int, str]] = (
    (0, "PCMU/8000"),
    (8, "PCMA/8000"),
    (98, "speex/8000"),
    (96, "opus/48000/2"),
    (101, "telephone-event/8000"),
)


def build_audio_answer(
    host: str,
    port: int = 16852,
    *,
    session_name: str = "fake",
    direction: str = "sendrecv",
) -> SessionDescription:
    """Build the fixed audio-only answer sent with 183 and 200 replies.

    The media itself never flows over RTP (audio goes to the device's HTTP
    channel), so the description only has to look plausible to the caller.
    """
    payloads = " ".join(str(payload) for payload, _ in AUDIO_CODECS)
    sdp = SessionDescription(
        [
            ("v", "0"),
            ("o", f"- 2253 3984 IN IP4 {host}"),
            ("s", session_name),
            ("c", f"IN IP4 {host}"),
            ("t", "0 0"),
            ("a", "msid-semantic:WMS *"),
            ("m", f"audio {port} RTP/AVP {payloads}"),
            ("a", "connection:new"),
            ("a", "setup:actpass"),
        ]
    )
    for payload, codec in AUDIO_CODECS:
        sdp.add("a", f"rtpmap:{payload} {codec}")
    sdp.add("a", "fmtp:101 0-16")
    sdp.add("a", "ptime:20")
    sdp.add("a", "maxptime:60")
    sdp.add("a", direction)
    return sdp


__all__ = [
    "CONTENT_TYPE",
    "SessionDescription",
    "AUDIO_CODECS",
    "build_audio_answer",
]

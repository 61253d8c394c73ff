"""
Intercom devices and their registry.
"""

from __future__ import annotations

import asyncio
import typing
from typing import Callable, Optional

from ._config import DeviceConfig, GatewayConfig
from ._presence import PresencePublisher
from ._session import AudioSessionController, MediaTransport
from ._streaming import ChunkSource
from ._transcoder import TranscodedSource
from ._transports import MediaChannel
from ._utils import SETTLE_DELAY, logger

ChannelFactory = Callable[[str, DeviceConfig], MediaTransport]


def _default_channel(key: str, config: DeviceConfig) -> MediaChannel:
    return MediaChannel(
        config.address,
        config.user,
        config.password,
        channel=config.channel,
        log=logger.getChild(f"device.{key}"),
    )


class Intercom:
    """
    One configured intercom.

    Bundles the device's media channel, its audio session controller and
    its presence announcements. ``key`` is the SIP user name the device
    registers with.
    """

    def __init__(
        self,
        key: str,
        config: DeviceConfig,
        *,
        channel: Optional[MediaTransport] = None,
        presence: Optional[PresencePublisher] = None,
        settle_delay: float = SETTLE_DELAY,
        ffmpeg: str = "ffmpeg",
    ) -> None:
        self.key = key
        self.config = config
        self.presence = presence
        self.ffmpeg = ffmpeg
        self.log = logger.getChild(f"device.{key}")
        self.channel = channel if channel is not None else _default_channel(key, config)
        self.controller = AudioSessionController(
            self.channel,
            sample_rate=config.outgoing_sample_rate,
            packet_size=config.packet_size,
            settle_delay=settle_delay,
            log=self.log,
        )

        if presence is not None:
            presence.announce_device(key, config.name)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def is_playing(self) -> bool:
        return self.controller.is_playing

    def trigger(self) -> asyncio.Task:
        """Handle a button press in the background."""
        return self.controller.spawn(self.handle_button_press())

    async def handle_button_press(self) -> bool:
        """
        Announce a button press and restart the running audio, if any.

        Returns:
            True if the running audio was restarted
        """
        self.log.info("Handling doorbell button press")
        if self.presence is not None:
            self.presence.device_pressed(self.key)
        return await self.controller.on_button_press()

    async def stop(self) -> None:
        await self.controller.stop()

    async def play(self, source: ChunkSource) -> None:
        """Play an already mu-law encoded source until it ends or is replaced."""
        await self.controller.play(source)

    async def play_url(self, url: str, *, background: bool = False) -> None:
        """
        Transcode and play the audio at ``url``.

        Args:
            url: Anything ffmpeg accepts as input
            background: Return as soon as playback has started

        Raises:
            TransportError: If ffmpeg cannot be started
        """
        source = await TranscodedSource.from_url(
            url, self.config.outgoing_sample_rate, executable=self.ffmpeg, log=self.log
        )
        if background:
            self.controller.spawn(self.play(source))
        else:
            await self.play(source)

    async def play_buffer(self, data: bytes) -> None:
        """
        Transcode and play an in-memory audio file, waiting until it ends.

        Raises:
            TransportError: If ffmpeg cannot be started
        """
        source = await TranscodedSource.from_bytes(
            data, self.config.outgoing_sample_rate, executable=self.ffmpeg, log=self.log
        )
        await self.play(source)

    async def aclose(self) -> None:
        await self.controller.aclose()
        aclose = getattr(self.channel, "aclose", None)
        if aclose is not None:
            await aclose()

    def __repr__(self) -> str:
        return f"<Intercom({self.key!r}, {self.controller.state.name})>"


class DeviceRegistry(typing.Mapping[str, Intercom]):
    """Read-only mapping of SIP user name to Intercom."""

    def __init__(self, devices: typing.Iterable[Intercom] = ()) -> None:
        self._devices = {device.key: device for device in devices}

    @classmethod
    def from_config(
        cls,
        config: GatewayConfig,
        *,
        presence: Optional[PresencePublisher] = None,
        channel_factory: Optional[ChannelFactory] = None,
        settle_delay: float = SETTLE_DELAY,
    ) -> DeviceRegistry:
        """Build one Intercom per ``[doorbell.<key>]`` table."""
        factory = channel_factory or _default_channel
        return cls(
            Intercom(
                key,
                device_config,
                channel=factory(key, device_config),
                presence=presence,
                settle_delay=settle_delay,
            )
            for key, device_config in config.devices.items()
        )

    def __getitem__(self, key: str) -> Intercom:
        return self._devices[key]

    def __iter__(self) -> typing.Iterator[str]:
        return iter(self._devices)

    def __len__(self) -> int:
        return len(self._devices)

    async def aclose(self) -> None:
        """Stop every device."""
        for device in self._devices.values():
            try:
                await device.aclose()
            except Exception as e:
                device.log.warning(f"Error while closing device: {e}")

    def __repr__(self) -> str:
        return f"<DeviceRegistry({', '.join(self._devices)})>"


__all__ = ["Intercom", "DeviceRegistry"]

from __future__ import annotations

import asyncio
import sys

import pytest

from conftest import FakeChannel

from intercomx import (
    BufferSource,
    DeviceRegistry,
    GatewayConfig,
    Intercom,
    PresencePublisher,
    StreamState,
    TransportError,
    TranscodedSource,
)
from intercomx._transcoder import READ_SIZE, ffmpeg_args


def test_construction_announces_device(device_config, mqtt_config, mqtt_client):
    presence = PresencePublisher(mqtt_config, mqtt_client)
    Intercom("front", device_config, channel=FakeChannel(), presence=presence)

    assert mqtt_client.payloads("hikvision/doorbells/front/status") == ["ready"]
    assert len(mqtt_client.published) == 2


def test_button_press_publishes_pressed(device_config, mqtt_config, mqtt_client):
    presence = PresencePublisher(mqtt_config, mqtt_client)
    device = Intercom("front", device_config, channel=FakeChannel(), presence=presence)

    restarted = asyncio.run(device.handle_button_press())

    assert restarted is False
    assert mqtt_client.payloads("hikvision/doorbells/front/status") == ["ready", "pressed"]


def test_trigger_runs_in_background(device_config, fake_channel):
    async def scenario():
        device = Intercom("front", device_config, channel=fake_channel, settle_delay=0.01)
        playing = asyncio.create_task(device.play(BufferSource(b"x" * 8000)))
        for _ in range(100):
            if device.is_playing:
                break
            await asyncio.sleep(0.005)

        task = device.trigger()
        assert not task.done()
        restarted = await task
        await device.aclose()
        await playing
        return restarted, device

    restarted, device = asyncio.run(scenario())
    assert restarted is True
    assert device.controller.state is StreamState.STOPPED
    assert fake_channel.closed


def test_play_without_ffmpeg_raises(device_config, fake_channel):
    device = Intercom("front", device_config, channel=fake_channel, ffmpeg="/nonexistent/ffmpeg")

    with pytest.raises(TransportError):
        asyncio.run(device.play_url("http://example.com/chime.mp3"))
    with pytest.raises(TransportError):
        asyncio.run(device.play_buffer(b"RIFF....WAVE"))
    assert fake_channel.calls == []


def test_ffmpeg_arguments():
    args = ffmpeg_args("pipe:0", 16000)
    assert args[args.index("-i") + 1] == "pipe:0"
    assert args[args.index("-ar") + 1] == "16000"
    assert args[args.index("-ac") + 1] == "1"
    assert args[args.index("-acodec") + 1] == "pcm_mulaw"
    assert args[-3:] == ["-f", "mulaw", "pipe:1"]


def test_transcoded_source_missing_binary():
    with pytest.raises(TransportError):
        asyncio.run(TranscodedSource.from_url("chime.mp3", 8000, executable="/nonexistent/ffmpeg"))


def test_registry_from_config(device_config):
    channels: dict[str, FakeChannel] = {}

    def factory(key, config):
        channels[key] = FakeChannel()
        return channels[key]

    config = GatewayConfig(devices={"front": device_config, "back": device_config})
    registry = DeviceRegistry.from_config(config, channel_factory=factory)

    assert list(registry) == ["front", "back"]
    assert len(registry) == 2
    assert "front" in registry
    assert registry.get("side") is None
    assert registry["back"].channel is channels["back"]
    assert registry["front"].name == "Front door"

    asyncio.run(registry.aclose())
    assert all(channel.closed for channel in channels.values())


@pytest.fixture
def endless_ffmpeg(tmp_path):
    """Executable that ignores its arguments and writes zeros forever."""
    script = tmp_path / "ffmpeg"
    script.write_text("#!/bin/sh\nexec cat /dev/zero\n")
    script.chmod(0o755)
    return str(script)


@pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
def test_transcoder_output_is_bounded_and_stopped(device_config, fake_channel, endless_ffmpeg):
    async def scenario():
        device = Intercom("front", device_config, channel=fake_channel, ffmpeg=endless_ffmpeg)
        source = await TranscodedSource.from_url("live.mp3", 8000, executable=endless_ffmpeg)
        await asyncio.sleep(0.3)
        buffered_idle = source.pending

        playing = asyncio.create_task(device.play(source))
        for _ in range(100):
            if device.is_playing:
                break
            await asyncio.sleep(0.005)
        await asyncio.sleep(0.2)
        buffered_playing = source.pending

        await device.stop()
        await asyncio.wait_for(playing, timeout=2)
        return source, buffered_idle, buffered_playing

    source, buffered_idle, buffered_playing = asyncio.run(scenario())
    limit = source.high_water_mark + READ_SIZE
    assert 0 < buffered_idle <= limit
    assert buffered_playing <= limit
    assert source.closed
    assert source.returncode is not None


@pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
def test_replaced_transcoder_is_stopped(device_config, fake_channel, endless_ffmpeg):
    async def scenario():
        device = Intercom("front", device_config, channel=fake_channel, ffmpeg=endless_ffmpeg)
        first = await TranscodedSource.from_url("live.mp3", 8000, executable=endless_ffmpeg)
        playing = asyncio.create_task(device.play(first))
        for _ in range(100):
            if device.is_playing:
                break
            await asyncio.sleep(0.005)

        await device.play(BufferSource(b"x" * 320))
        await asyncio.wait_for(playing, timeout=2)
        return first

    first = asyncio.run(scenario())
    assert first.closed
    assert first.returncode is not None

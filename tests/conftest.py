from __future__ import annotations

from types import SimpleNamespace

import pytest

from intercomx import DeviceConfig, MqttConfig
from intercomx._cancel import CancelToken


class FakeStream:
    def __init__(self, channel: FakeChannel, token: CancelToken) -> None:
        self.channel = channel
        self.token = token

    async def __aenter__(self) -> FakeStream:
        self.channel.active += 1
        self.channel.max_active = max(self.channel.max_active, self.channel.active)
        self.channel.calls.append("stream")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.channel.active -= 1
        return False

    async def feed(self, chunk: bytes) -> None:
        self.channel.chunks.append(chunk)


class FakeChannel:
    """Media channel recording what the controller does with it."""

    def __init__(self, fail_open: Exception | None = None) -> None:
        self.fail_open = fail_open
        self.calls: list[str] = []
        self.chunks: list[bytes] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def open(self) -> None:
        self.calls.append("open")
        if self.fail_open is not None:
            raise self.fail_open

    async def close(self) -> None:
        self.calls.append("close")

    def stream(self, token: CancelToken) -> FakeStream:
        return FakeStream(self, token)

    async def aclose(self) -> None:
        self.closed = True


class FakeMqttClient:
    """Stand-in for paho's Client recording publishes."""

    def __init__(self, rc: int = 0) -> None:
        self.rc = rc
        self.published: list[tuple[str, str, int, bool]] = []
        self.connected_to: tuple[str, int] | None = None
        self.loop_running = False

    def connect_async(self, host: str, port: int, keepalive: int = 60) -> None:
        self.connected_to = (host, port)

    def loop_start(self) -> None:
        self.loop_running = True

    def loop_stop(self) -> None:
        self.loop_running = False

    def disconnect(self) -> None:
        pass

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False):
        self.published.append((topic, payload, qos, retain))
        return SimpleNamespace(rc=self.rc)

    def payloads(self, topic: str) -> list[str]:
        return [payload for t, payload, _, _ in self.published if t == topic]


@pytest.fixture
def device_config() -> DeviceConfig:
    return DeviceConfig(
        name="Front door",
        address="http://192.168.1.20",
        user="admin",
        password="secret",
    )


@pytest.fixture
def mqtt_config() -> MqttConfig:
    return MqttConfig(broker="mqtt.local")


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def mqtt_client() -> FakeMqttClient:
    return FakeMqttClient()

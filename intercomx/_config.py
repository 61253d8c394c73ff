"""
Gateway configuration.

The gateway is configured with a TOML file holding a ``[server]`` table, an
optional ``[mqtt]`` table and one ``[doorbell.<key>]`` table per device.
The ``<key>`` is the SIP user name the device registers with.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ._types import ConfigError
from ._utils import USER_AGENT

M = TypeVar("M", bound=BaseModel)

# TOML values are taken as written: no "8080" for an int, no true for a port
_TABLE = ConfigDict(extra="forbid", strict=True)


class ServerConfig(BaseModel):
    """Listening ports of the gateway."""

    model_config = _TABLE

    host: str = "0.0.0.0"
    http_port: int = 8080
    sip_port: int = 5060
    user_agent: str = USER_AGENT


class DeviceConfig(BaseModel):
    """Connection settings of one intercom device."""

    model_config = _TABLE

    name: str
    address: str
    user: str
    password: str
    outgoing_sample_rate: int = 8000
    packet_size: int = 320
    channel: int = 1

    @field_validator("outgoing_sample_rate", "packet_size")
    @classmethod
    def check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"must be positive, got {value}")
        return value


class MqttConfig(BaseModel):
    """MQTT broker and Home Assistant discovery settings."""

    model_config = _TABLE

    broker: str
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    topic: str = "hikvision"
    ha_prefix: str = "homeassistant"
    unique_id: str = "hikvision_gateway"
    protocol: str = "mqtt"

    @property
    def transport(self) -> str:
        """paho-mqtt transport name for ``protocol``."""
        return "websockets" if self.protocol in ("ws", "wss") else "tcp"

    @property
    def tls(self) -> bool:
        return self.protocol in ("mqtts", "ssl", "wss")


class GatewayConfig(BaseModel):
    """Complete gateway configuration."""

    model_config = ConfigDict(extra="forbid")

    server: ServerConfig = Field(default_factory=ServerConfig)
    devices: Dict[str, DeviceConfig] = Field(default_factory=dict)
    mqtt: Optional[MqttConfig] = None


def _build(model: Type[M], table: Any, where: str) -> M:
    try:
        return model.model_validate(table)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'table'}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigError(f"[{where}] is invalid: {problems}") from e


def parse_config(data: Mapping[str, Any]) -> GatewayConfig:
    """
    Build a GatewayConfig from an already parsed TOML document.

    Raises:
        ConfigError: If a table is missing keys or holds wrong types
    """
    server = _build(ServerConfig, data.get("server", {}), "server")

    mqtt = None
    if "mqtt" in data:
        mqtt = _build(MqttConfig, data["mqtt"], "mqtt")

    doorbells = data.get("doorbell", {})
    if not isinstance(doorbells, Mapping):
        raise ConfigError("[doorbell] must be a table of devices")

    devices = {
        key: _build(DeviceConfig, table, f"doorbell.{key}") for key, table in doorbells.items()
    }
    return GatewayConfig(server=server, devices=devices, mqtt=mqtt)


def load_config(path: str | Path) -> GatewayConfig:
    """
    Load the gateway configuration from a TOML file.

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    try:
        with open(path, "rb") as fh:
            data = tomllib.load(fh)
    except OSError as e:
        raise ConfigError(f"Cannot read configuration {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    return parse_config(data)


__all__ = [
    "ServerConfig",
    "DeviceConfig",
    "MqttConfig",
    "GatewayConfig",
    "parse_config",
    "load_config",
]

"""
MQTT presence and Home Assistant discovery.

Publishes the gateway's availability, one device-automation trigger per
intercom (so a button press can drive automations) and the press events
themselves. Publishing is best effort: failures are logged and never
reach the signaling or audio paths.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import paho.mqtt.client as mqtt

from ._config import MqttConfig
from ._utils import logger

READY = "ready"
PRESSED = "pressed"
ONLINE = "online"
OFFLINE = "offline"


class PresencePublisher:
    """
    Publishes gateway and device status over MQTT.

    Topics:
        {topic}/status                         gateway online/offline (retained, last will)
        {topic}/doorbells/{key}/status         device ready (retained) / pressed
        {ha_prefix}/binary_sensor/{topic}/config                   gateway discovery
        {ha_prefix}/device_automation/{topic}/doorbell_{key}/config device trigger discovery
    """

    def __init__(
        self,
        config: MqttConfig,
        client: Optional[Any] = None,
        *,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.log = log or logger.getChild("mqtt")
        self._client = client if client is not None else self._create_client(config)

    @staticmethod
    def _create_client(config: MqttConfig) -> mqtt.Client:
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.unique_id,
            transport=config.transport,
        )
        if config.username:
            client.username_pw_set(config.username, config.password)
        if config.tls:
            client.tls_set()
        client.will_set(f"{config.topic}/status", OFFLINE, qos=1, retain=True)
        return client

    @property
    def gateway_topic(self) -> str:
        return f"{self.config.topic}/status"

    def device_topic(self, key: str, topic: str = "status") -> str:
        return f"{self.config.topic}/doorbells/{key}/{topic}"

    def start(self) -> None:
        """Connect in the background; publishes are queued until connected."""
        self._client.connect_async(self.config.broker, self.config.port, 60)
        self._client.loop_start()
        self.log.info(f"Connecting to MQTT broker {self.config.broker}:{self.config.port}")

    def stop(self) -> None:
        """Publish the gateway as offline and disconnect."""
        self.publish(self.gateway_topic, OFFLINE, retain=True)
        self._client.disconnect()
        self._client.loop_stop()

    def publish(self, topic: str, payload: str, *, retain: bool = False) -> bool:
        """
        Publish a message, logging instead of raising on failure.

        Returns:
            True if the message was accepted by the client
        """
        try:
            info = self._client.publish(topic, payload, qos=1, retain=retain)
        except (ValueError, OSError) as e:
            self.log.error(f"Error publishing MQTT message to {topic}: {e}")
            return False

        if info.rc == mqtt.MQTT_ERR_NO_CONN:
            self.log.debug(f"MQTT not connected yet, {topic} queued")
            return True
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.log.error(f"Error publishing MQTT message to {topic}: {mqtt.error_string(info.rc)}")
            return False
        return True

    def announce_gateway(self, name: str = "Hikvision Server") -> None:
        """Publish the gateway as online with its binary-sensor discovery config."""
        self.publish(self.gateway_topic, ONLINE, retain=True)
        self.publish(
            f"{self.config.ha_prefix}/binary_sensor/{self.config.topic}/config",
            json.dumps(
                {
                    "name": name,
                    "object_id": name.lower().replace(" ", "_"),
                    "device": {
                        "name": name,
                        "identifiers": [self.config.unique_id],
                    },
                    "state_topic": self.gateway_topic,
                    "payload_on": ONLINE,
                    "payload_off": OFFLINE,
                    "unique_id": self.config.unique_id,
                }
            ),
            retain=True,
        )

    def announce_device(self, key: str, name: str) -> None:
        """Publish a device as ready with its device-automation trigger config."""
        unique_id = f"{self.config.unique_id}_doorbell_{key}"
        self.publish(self.device_topic(key), READY, retain=True)
        self.publish(
            f"{self.config.ha_prefix}/device_automation/{self.config.topic}/doorbell_{key}/config",
            json.dumps(
                {
                    "name": key,
                    "automation_type": "trigger",
                    "type": "button_short_press",
                    "subtype": "doorbell",
                    "device": {
                        "identifiers": [unique_id],
                        "manufacturer": "hikvision",
                        "name": name,
                    },
                    "payload": PRESSED,
                    "topic": self.device_topic(key),
                    "unique_id": unique_id,
                }
            ),
            retain=True,
        )

    def device_pressed(self, key: str) -> None:
        """Publish a (non-retained) button press."""
        self.publish(self.device_topic(key), PRESSED)


__all__ = ["PresencePublisher"]

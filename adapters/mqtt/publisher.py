"""
MQTT transport for pole messages, built on paho-mqtt.

The pole core only needs ``publish(message)``; connection management,
reconnects and QoS handshakes stay inside paho's network loop.
"""

from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt
import structlog

from smartpole.config import MqttConfig
from smartpole.domain.models import OutboundMessage
from smartpole.observability import get_logger


class MqttPublisher:
    """Publishes ``OutboundMessage`` objects to a broker."""

    def __init__(
        self,
        config: MqttConfig,
        client_id: str,
        on_connected: Callable[[], None] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.client_id = config.client_id or client_id
        self.on_connected = on_connected
        self.logger = (logger or get_logger("mqtt_publisher")).bind(client_id=self.client_id)
        self.is_connected = False

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            clean_session=False,
        )
        self.client.reconnect_delay_set(min_delay=1, max_delay=30)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

    def _on_connect(
        self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any
    ) -> None:
        if reason_code.is_failure:
            self.logger.error("mqtt_connect_refused", reason=str(reason_code))
            return
        self.is_connected = True
        self.logger.info("mqtt_connected", host=self.config.host, port=self.config.port)
        if self.on_connected is not None:
            self.on_connected()

    def _on_disconnect(
        self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any
    ) -> None:
        self.is_connected = False
        self.logger.warning("mqtt_disconnected", reason=str(reason_code))

    def connect(self) -> None:
        """Start the network loop; ``on_connected`` fires once the broker accepts."""
        try:
            self.client.connect(self.config.host, self.config.port, self.config.keepalive_seconds)
        except OSError as e:
            self.logger.error("mqtt_connect_failed", host=self.config.host, error=str(e))
            raise
        self.client.loop_start()

    def disconnect(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()
        self.is_connected = False
        self.logger.info("mqtt_closed")

    def publish(self, message: OutboundMessage) -> None:
        info = self.client.publish(message.topic, message.payload, qos=int(message.qos))
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"publish to {message.topic} failed: {mqtt.error_string(info.rc)}")

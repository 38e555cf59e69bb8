"""
Transport boundary for outbound pole messages.

The controller hands every message to a ``MessagePublisher`` and moves on;
it never waits for delivery. The requested QoS travels on the message.
"""

from typing import Protocol

import structlog

from smartpole.domain.models import OutboundMessage
from smartpole.observability import get_logger


class MessagePublisher(Protocol):
    """
    Anything that can take a message off the pole's hands.

    Structural: the MQTT adapter and test doubles satisfy it without
    inheriting from it. Implementations may raise; the controller logs and
    carries on.
    """

    def publish(self, message: OutboundMessage) -> None: ...


class InMemoryPublisher:
    """Keeps every published message, for tests and offline runs."""

    def __init__(self) -> None:
        self.messages: list[OutboundMessage] = []

    def publish(self, message: OutboundMessage) -> None:
        self.messages.append(message)

    def on_topic(self, topic: str) -> list[OutboundMessage]:
        return [m for m in self.messages if m.topic == topic]

    def matching(self, prefix: str) -> list[OutboundMessage]:
        return [m for m in self.messages if m.topic.startswith(prefix)]

    def clear(self) -> None:
        self.messages.clear()


class LoggingPublisher:
    """Writes messages to the structured log instead of a broker."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self.logger = logger or get_logger("logging_publisher")

    def publish(self, message: OutboundMessage) -> None:
        self.logger.debug(
            "message_published",
            topic=message.topic,
            qos=int(message.qos),
            payload_bytes=len(message.payload),
        )

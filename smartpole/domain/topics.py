"""Topic layout and delivery-guarantee levels shared with the transport."""

from enum import IntEnum

TOPIC_ROOT = "hospital"


class DeliveryGuarantee(IntEnum):
    """Requested delivery level, mapped 1:1 onto MQTT QoS."""

    BEST_EFFORT = 0
    AT_LEAST_ONCE = 1
    EXACTLY_ONCE = 2


def telemetry_topic(pole_id: str) -> str:
    return f"{TOPIC_ROOT}/pole/{pole_id}/telemetry"


def status_topic(pole_id: str) -> str:
    return f"{TOPIC_ROOT}/pole/{pole_id}/status"


def alert_topic(severity: str, pole_id: str) -> str:
    return f"{TOPIC_ROOT}/alert/{severity.lower()}/{pole_id}"


def nurse_call_topic(pole_id: str) -> str:
    return f"{TOPIC_ROOT}/nurse/call/{pole_id}"

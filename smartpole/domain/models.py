"""
Domain models for the smart IV pole.

Wire-facing models serialize to camelCase JSON so the hospital backend and
dashboard can consume them unchanged. Session and snapshots are immutable;
``DeviceState`` is the only mutable record and is owned by the controller.
"""

import math
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from smartpole.domain.topics import DeliveryGuarantee

EMPTY_CONTAINER_WEIGHT_G = 50.0
STABILITY_WINDOW_SIZE = 5

# Upper bounds on nurse input; anything larger is treated as a typo.
MAX_INITIAL_VOLUME_ML = 1_000_000.0
MAX_PRESCRIBED_DURATION_MIN = 525_600 * 100
MAX_GTT_FACTOR = 1_000


class PoleState(str, Enum):
    """Lifecycle of one pole: transport connection, then infusion sessions."""

    IDLE = "idle"
    CONNECTED = "connected"
    ACTIVE = "active"
    STOPPED = "stopped"


class AlertSeverity(str, Enum):
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AlertKind(str, Enum):
    LOW_FLUID = "LOW_FLUID"
    FLOW_ABNORMAL = "FLOW_ABNORMAL"
    BATTERY_LOW = "BATTERY_LOW"
    EMERGENCY_CALL = "EMERGENCY_CALL"


class WireModel(BaseModel):
    """Base for payloads published to the transport."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def _parse_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


class SessionInput(BaseModel):
    """
    Prescription parameters as entered by the nurse.

    Every field has an explicit default that replaces missing, blank,
    unparseable, non-positive or implausibly large input. Nothing here is
    ever rejected.
    """

    patient_id: str = "PAT-12345"
    drug_type: str = "Normal Saline 500mL"
    initial_volume_ml: float = Field(default=500.0, gt=0.0, le=MAX_INITIAL_VOLUME_ML)
    prescribed_duration_min: int = Field(default=240, gt=0, le=MAX_PRESCRIBED_DURATION_MIN)
    gtt_factor: int = Field(default=20, gt=0, le=MAX_GTT_FACTOR)
    nurse_id: str = "NURSE-001"

    @classmethod
    def default_for(cls, info: ValidationInfo) -> Any:
        return cls.model_fields[info.field_name].default

    @field_validator("patient_id", "drug_type", "nurse_id", mode="before")
    @classmethod
    def text_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.default_for(info)
        text = str(value).strip()
        return text or cls.default_for(info)

    @field_validator("initial_volume_ml", mode="before")
    @classmethod
    def volume_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        number = _parse_number(value)
        if number is None or not 0 < number <= MAX_INITIAL_VOLUME_ML:
            return cls.default_for(info)
        return number

    @field_validator("prescribed_duration_min", "gtt_factor", mode="before")
    @classmethod
    def count_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        number = _parse_number(value)
        # Fractional minutes/drops are truncated, as the bedside keypad does.
        if number is None:
            return cls.default_for(info)
        upper = (
            MAX_PRESCRIBED_DURATION_MIN
            if info.field_name == "prescribed_duration_min"
            else MAX_GTT_FACTOR
        )
        if not 0 < int(number) <= upper:
            return cls.default_for(info)
        return int(number)


class Session(WireModel):
    """Prescription record for one infusion. Fixed from start to stop."""

    session_id: str
    patient_id: str
    drug_type: str
    initial_volume_ml: float = Field(gt=0.0, alias="initialVolume")
    initial_weight_g: float = Field(gt=0.0, alias="initialWeight")
    prescribed_duration_min: int = Field(gt=0, alias="prescribedDuration")
    prescribed_drip_rate_gtt: int = Field(ge=0, alias="prescribedDripRate")
    gtt_factor: int = Field(gt=0)
    start_time: datetime
    prescribed_end_time: datetime
    nurse_id: str

    @property
    def flow_rate_ml_per_min(self) -> float:
        return self.prescribed_drip_rate_gtt / self.gtt_factor

    @property
    def flow_rate_g_per_sec(self) -> float:
        # 1 mL of infusate weighs 1 g
        return self.flow_rate_ml_per_min / 60


@dataclass
class DeviceState:
    """Load-cell and disturbance state for the running session."""

    current_weight_g: float
    previous_weight_g: float
    empty_container_weight_g: float = EMPTY_CONTAINER_WEIGHT_G
    movement_noise_g: float = 0.0
    stability_window: deque[float] = field(
        default_factory=lambda: deque(maxlen=STABILITY_WINDOW_SIZE)
    )
    is_stable: bool = False
    already_fired: set[str] = field(default_factory=set)

    @classmethod
    def for_session(cls, session: Session) -> "DeviceState":
        return cls(
            current_weight_g=session.initial_weight_g,
            previous_weight_g=session.initial_weight_g,
        )

    @property
    def observed_weight_g(self) -> float:
        """What the load cell reports, disturbance included."""
        return self.current_weight_g + self.movement_noise_g


class TelemetrySnapshot(WireModel):
    weight: float
    previous_weight: float
    weight_change_rate: float = Field(description="g/min, positive while draining")
    is_stable: bool
    stability: float = Field(ge=0.0, le=100.0)
    flow_rate: float = Field(description="mL/min")
    remaining: float = Field(ge=0.0, description="percent of prescribed volume")
    remaining_volume_ml: float = Field(alias="remainingVolume")
    drip_rate: int
    calculated_end_time: datetime | None = None


class TelemetryMessage(WireModel):
    pole_id: str
    timestamp: datetime
    telemetry: TelemetrySnapshot
    session: Session


class HardwareStatus(WireModel):
    load_cell: str = "OK"
    display: str = "OK"
    wifi: str = "CONNECTED"
    signal_strength: int = Field(description="dBm")


class DeviceStatus(WireModel):
    online: bool = True
    battery: int = Field(ge=0, le=100)
    charging: bool = False
    hardware: HardwareStatus


class StatusMessage(WireModel):
    pole_id: str
    timestamp: datetime
    status: DeviceStatus


class Alert(WireModel):
    """A single threshold or operator alert. Emitted, never stored."""

    alert_id: str
    pole_id: str
    severity: AlertSeverity
    kind: AlertKind = Field(alias="type")
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def delivery_guarantee(self) -> DeliveryGuarantee:
        if self.severity is AlertSeverity.CRITICAL:
            return DeliveryGuarantee.EXACTLY_ONCE
        return DeliveryGuarantee.AT_LEAST_ONCE


class NurseCallMessage(WireModel):
    pole_id: str
    bed: str
    timestamp: datetime
    kind: AlertKind = Field(default=AlertKind.EMERGENCY_CALL, alias="type")


@dataclass(frozen=True)
class OutboundMessage:
    """A serialized payload handed to the transport collaborator."""

    topic: str
    payload: str
    qos: DeliveryGuarantee

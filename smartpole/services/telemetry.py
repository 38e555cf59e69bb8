"""
Telemetry and status report composition.

Turns the simulator and detector state into the snapshots published every
tick, and advances ``previous_weight_g`` as the last step of each tick.
"""

import random
from datetime import datetime, timedelta

from smartpole.domain.models import (
    DeviceState,
    DeviceStatus,
    HardwareStatus,
    Session,
    StatusMessage,
    TelemetryMessage,
    TelemetrySnapshot,
)
from smartpole.services.stability import StabilityDetector


def projected_end_time(
    now: datetime, remaining_volume_ml: float, flow_rate_ml_per_min: float
) -> datetime | None:
    """Time the bag runs dry at the prescribed rate, or None if undefined."""
    if remaining_volume_ml <= 0 or flow_rate_ml_per_min <= 0:
        return None
    return now + timedelta(minutes=remaining_volume_ml / flow_rate_ml_per_min)


class TelemetryComposer:
    """Builds one ``TelemetrySnapshot`` per tick for a session."""

    def __init__(
        self,
        pole_id: str,
        session: Session,
        state: DeviceState,
        detector: StabilityDetector,
        tick_seconds: float = 1.0,
    ) -> None:
        self.pole_id = pole_id
        self.session = session
        self.state = state
        self.detector = detector
        self.tick_seconds = tick_seconds

    def compose(self, now: datetime, observed_weight_g: float | None = None) -> TelemetrySnapshot:
        state = self.state
        session = self.session

        remaining_volume_ml = state.current_weight_g - state.empty_container_weight_g
        remaining_pct = max(0.0, remaining_volume_ml / session.initial_volume_ml * 100)
        flow_rate = session.flow_rate_ml_per_min
        change_per_tick = state.previous_weight_g - state.current_weight_g

        snapshot = TelemetrySnapshot(
            weight=state.observed_weight_g if observed_weight_g is None else observed_weight_g,
            previous_weight=state.previous_weight_g,
            weight_change_rate=change_per_tick * 60 / self.tick_seconds,
            is_stable=state.is_stable,
            stability=self.detector.stability_score(),
            flow_rate=flow_rate,
            remaining=remaining_pct,
            remaining_volume_ml=remaining_volume_ml,
            drip_rate=session.prescribed_drip_rate_gtt,
            calculated_end_time=projected_end_time(now, remaining_volume_ml, flow_rate),
        )

        state.previous_weight_g = state.current_weight_g
        return snapshot

    def message(self, snapshot: TelemetrySnapshot, now: datetime) -> TelemetryMessage:
        return TelemetryMessage(
            pole_id=self.pole_id, timestamp=now, telemetry=snapshot, session=self.session
        )


def compose_status(
    pole_id: str, battery_pct: float, now: datetime, rng: random.Random
) -> StatusMessage:
    """Periodic health report; signal strength wanders between -65 and -46 dBm."""
    return StatusMessage(
        pole_id=pole_id,
        timestamp=now,
        status=DeviceStatus(
            battery=int(battery_pct),
            hardware=HardwareStatus(signal_strength=-65 + rng.randrange(20)),
        ),
    )

"""
Session state machine for one smart IV pole.

Sequences the simulator, stability detector, telemetry composer and alert
policy across Idle -> Connected -> Active -> Stopped. Each ``tick()`` runs
simulate -> classify -> compose -> alert as a single step, so there is one
authoritative order of updates per simulated second.

Misuse (acting without a session, starting without a connection) is
returned as ``Result.err`` and never raised.
"""

import random
from dataclasses import dataclass, field
from typing import Any

import structlog

from smartpole.config import AppConfig
from smartpole.domain.errors import (
    NoActiveSessionError,
    NotConnectedError,
    PoleStateError,
    SessionAlreadyActiveError,
)
from smartpole.domain.models import (
    Alert,
    DeviceState,
    NurseCallMessage,
    OutboundMessage,
    PoleState,
    Session,
    SessionInput,
    StatusMessage,
    TelemetryMessage,
    WireModel,
)
from smartpole.domain.topics import (
    DeliveryGuarantee,
    alert_topic,
    nurse_call_topic,
    status_topic,
    telemetry_topic,
)
from smartpole.observability import get_logger
from smartpole.result import Result
from smartpole.services.alert_policy import AlertPolicy
from smartpole.services.publishers import LoggingPublisher, MessagePublisher
from smartpole.services.session_factory import create_session
from smartpole.services.simulator import BatteryModel, SimulationClock, WeightSimulator
from smartpole.services.stability import StabilityDetector
from smartpole.services.telemetry import TelemetryComposer, compose_status


@dataclass
class TickReport:
    """Everything one tick produced."""

    tick: int
    telemetry: TelemetryMessage
    alerts: list[Alert] = field(default_factory=list)
    status: StatusMessage | None = None
    drained: bool = True


@dataclass
class _SessionRuntime:
    session: Session
    state: DeviceState
    simulator: WeightSimulator
    detector: StabilityDetector
    composer: TelemetryComposer


class SmartPoleController:
    """
    Owns the pole lifecycle and all per-session state.

    Not thread-safe by itself: callers serialize access, which ``PoleRunner``
    does with a single lock shared by ticks and operator events.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        publisher: MessagePublisher | None = None,
        rng: random.Random | None = None,
        clock: SimulationClock | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.pole_id = self.config.pole.pole_id
        self.bed = self.config.pole.bed
        self.publisher: MessagePublisher = publisher or LoggingPublisher()
        self.rng = rng or random.Random(self.config.simulation.seed)
        self.clock = clock or SimulationClock()
        self.logger = (logger or get_logger("pole_controller")).bind(pole_id=self.pole_id)

        self.battery = BatteryModel(
            level_pct=self.config.pole.initial_battery_pct,
            floor_pct=self.config.pole.battery_floor_pct,
        )
        self.alert_policy = AlertPolicy(
            pole_id=self.pole_id,
            config=self.config.alerts,
            rng=self.rng,
            flow_abnormal_probability=self.config.simulation.flow_abnormal_probability,
            logger=self.logger.bind(component="alert_policy"),
        )

        self._state = PoleState.IDLE
        self._runtime: _SessionRuntime | None = None
        self._ticks = 0

    @property
    def state(self) -> PoleState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is PoleState.ACTIVE

    @property
    def session(self) -> Session | None:
        return self._runtime.session if self._runtime else None

    @property
    def device_state(self) -> DeviceState | None:
        return self._runtime.state if self._runtime else None

    @property
    def ticks(self) -> int:
        return self._ticks

    def mark_connected(self) -> None:
        """Transport reported a successful connection."""
        if self._state is PoleState.IDLE:
            self._state = PoleState.CONNECTED
            self.logger.info("transport_connected")

    def start_session(
        self, session_input: SessionInput | None = None
    ) -> Result[Session, PoleStateError]:
        if self._state is PoleState.IDLE:
            self.logger.warning("session_start_rejected", reason=NotConnectedError.reason)
            return Result.err(NotConnectedError())
        if self._state is PoleState.ACTIVE:
            self.logger.warning("session_start_rejected", reason=SessionAlreadyActiveError.reason)
            return Result.err(SessionAlreadyActiveError())

        session = create_session(session_input, now=self.clock.now())
        state = DeviceState.for_session(session)
        tick_seconds = self.config.simulation.tick_interval_seconds
        detector = StabilityDetector(state, self.rng)
        self._runtime = _SessionRuntime(
            session=session,
            state=state,
            simulator=WeightSimulator(
                session,
                state,
                self.rng,
                tick_seconds=tick_seconds,
                logger=self.logger.bind(component="weight_simulator"),
            ),
            detector=detector,
            composer=TelemetryComposer(
                self.pole_id, session, state, detector, tick_seconds=tick_seconds
            ),
        )
        self.alert_policy.begin_session(state.already_fired, battery_pct=self.battery.level_pct)
        self._ticks = 0
        self._state = PoleState.ACTIVE

        self.logger.info(
            "session_started",
            session_id=session.session_id,
            patient_id=session.patient_id,
            drug_type=session.drug_type,
            initial_volume_ml=session.initial_volume_ml,
            prescribed_duration_min=session.prescribed_duration_min,
            drip_rate_gtt=session.prescribed_drip_rate_gtt,
        )
        self._report_status()
        return Result.ok(session)

    def stop_session(self) -> Result[Session, PoleStateError]:
        if self._runtime is None or not self.is_active:
            return Result.err(NoActiveSessionError())

        session = self._runtime.session
        self._runtime = None
        self._state = PoleState.STOPPED
        self.logger.info("session_stopped", session_id=session.session_id, ticks=self._ticks)
        return Result.ok(session)

    def inject_movement(self) -> Result[float, PoleStateError]:
        """Operator bumped the pole; readings are disturbed for a while."""
        if self._runtime is None or not self.is_active:
            return Result.err(NoActiveSessionError())

        noise = self._runtime.simulator.inject_movement()
        self._runtime.detector.reset()
        return Result.ok(noise)

    def emergency_call(self) -> Result[Alert, PoleStateError]:
        """Nurse-call button: a call message plus a CRITICAL alert, both QoS 2."""
        if self._state is PoleState.IDLE:
            return Result.err(NotConnectedError())

        now = self.clock.now()
        call = NurseCallMessage(pole_id=self.pole_id, bed=self.bed, timestamp=now)
        self._publish(nurse_call_topic(self.pole_id), call, DeliveryGuarantee.EXACTLY_ONCE)

        alert = self.alert_policy.emergency_call(now, self._alert_context())
        self._publish_alert(alert)
        self.logger.warning("emergency_call_sent", alert_id=alert.alert_id)
        return Result.ok(alert)

    def tick(self) -> Result[TickReport, PoleStateError]:
        """Advance the simulation by one tick and publish what it produced."""
        runtime = self._runtime
        if runtime is None or not self.is_active:
            return Result.err(NoActiveSessionError())

        now = self.clock.advance(self.config.simulation.tick_interval_seconds)
        self._ticks += 1

        drained = runtime.simulator.advance()
        observed = runtime.state.observed_weight_g
        runtime.detector.observe(observed)
        runtime.simulator.decay_movement()
        snapshot = runtime.composer.compose(now, observed_weight_g=observed)
        telemetry = runtime.composer.message(snapshot, now)
        self._publish(telemetry_topic(self.pole_id), telemetry, DeliveryGuarantee.AT_LEAST_ONCE)

        context = self._alert_context()
        alerts = self.alert_policy.evaluate_fluid(snapshot.remaining, now, context)
        alerts += self.alert_policy.evaluate_flow(snapshot.flow_rate, now, context)
        for alert in alerts:
            self._publish_alert(alert)

        report = TickReport(tick=self._ticks, telemetry=telemetry, alerts=alerts, drained=drained)
        if self._ticks % self.config.simulation.status_every_ticks == 0:
            report.status, battery_alerts = self._report_status()
            report.alerts.extend(battery_alerts)

        self.logger.debug(
            "tick_completed",
            tick=self._ticks,
            weight_g=round(runtime.state.current_weight_g, 3),
            remaining_pct=round(snapshot.remaining, 2),
            is_stable=snapshot.is_stable,
            alerts=len(alerts),
        )
        return Result.ok(report)

    def status_summary(self) -> dict[str, Any]:
        """Operator-facing snapshot of connection, session and device state."""
        summary: dict[str, Any] = {
            "pole_id": self.pole_id,
            "bed": self.bed,
            "state": self._state.value,
            "connected": self._state is not PoleState.IDLE,
            "session_active": self.is_active,
            "battery_pct": round(self.battery.level_pct, 1),
        }
        if self._runtime is not None:
            session = self._runtime.session
            state = self._runtime.state
            remaining_volume = state.current_weight_g - state.empty_container_weight_g
            summary.update(
                session_id=session.session_id,
                patient_id=session.patient_id,
                drug_type=session.drug_type,
                current_weight_g=round(state.current_weight_g, 1),
                remaining_pct=round(remaining_volume / session.initial_volume_ml * 100, 1),
                is_stable=state.is_stable,
                ticks=self._ticks,
            )
        return summary

    def _report_status(self) -> tuple[StatusMessage, list[Alert]]:
        now = self.clock.now()
        status = compose_status(self.pole_id, self.battery.level_pct, now, self.rng)
        self._publish(status_topic(self.pole_id), status, DeliveryGuarantee.BEST_EFFORT)

        level = self.battery.drain(self.config.pole.battery_drain_per_status_pct)
        alerts = self.alert_policy.evaluate_battery(level, now, self._alert_context())
        for alert in alerts:
            self._publish_alert(alert)

        self.logger.info("status_reported", battery_pct=round(level, 2))
        return status, alerts

    def _alert_context(self) -> dict[str, Any]:
        context: dict[str, Any] = {"bed": self.bed, "battery": round(self.battery.level_pct, 1)}
        if self._runtime is not None:
            session = self._runtime.session
            state = self._runtime.state
            remaining_volume = state.current_weight_g - state.empty_container_weight_g
            context.update(
                sessionId=session.session_id,
                patientId=session.patient_id,
                remaining=round(remaining_volume / session.initial_volume_ml * 100, 2),
                flowRate=session.flow_rate_ml_per_min,
            )
        return context

    def _publish_alert(self, alert: Alert) -> None:
        self._publish(
            alert_topic(alert.severity.value, self.pole_id), alert, alert.delivery_guarantee
        )

    def _publish(self, topic: str, payload: WireModel, qos: DeliveryGuarantee) -> None:
        message = OutboundMessage(topic=topic, payload=payload.to_json(), qos=qos)
        try:
            self.publisher.publish(message)
        except Exception as e:
            self.logger.warning("publish_failed", topic=topic, error=str(e))

"""
Threshold alert policy for fluid level, battery and operator calls.

Two firing strategies are supported:

- ``AlertMode.EDGE`` remembers the last value per rule and fires once when it
  drops from at-or-above the threshold to below it. Fired rules stay quiet
  until the next session starts.
- ``AlertMode.BAND`` fires whenever the value sits in a narrow band just
  below the threshold. It fires roughly once per descent because ticks move
  the value in small steps, but it can fire again if noise re-enters the band
  and stays silent if a tick jumps over it.
"""

import itertools
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from smartpole.config import AlertConfig, AlertMode
from smartpole.domain.models import Alert, AlertKind, AlertSeverity
from smartpole.observability import get_logger


@dataclass(frozen=True)
class ThresholdRule:
    """One monitored boundary and the band used in ``BAND`` mode."""

    key: str
    kind: AlertKind
    severity: AlertSeverity
    threshold: float
    band_width: float
    band_includes_threshold: bool

    def in_band(self, value: float) -> bool:
        lower = self.threshold - self.band_width
        if self.band_includes_threshold:
            return lower < value <= self.threshold
        return lower < value < self.threshold


class AlertPolicy:
    """Decides which alerts a tick, status report or operator action produces."""

    def __init__(
        self,
        pole_id: str,
        config: AlertConfig | None = None,
        rng: random.Random | None = None,
        flow_abnormal_probability: float = 0.0,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.pole_id = pole_id
        self.config = config or AlertConfig()
        self.rng = rng or random.Random()
        self.flow_abnormal_probability = flow_abnormal_probability
        self.logger = logger or get_logger("alert_policy")

        self.low_fluid_warning = ThresholdRule(
            key="low_fluid_warning",
            kind=AlertKind.LOW_FLUID,
            severity=AlertSeverity.WARNING,
            threshold=self.config.low_fluid_warning_pct,
            band_width=0.2,
            band_includes_threshold=True,
        )
        self.low_fluid_critical = ThresholdRule(
            key="low_fluid_critical",
            kind=AlertKind.LOW_FLUID,
            severity=AlertSeverity.CRITICAL,
            threshold=self.config.low_fluid_critical_pct,
            band_width=0.2,
            band_includes_threshold=True,
        )
        self.battery_low = ThresholdRule(
            key="battery_low",
            kind=AlertKind.BATTERY_LOW,
            severity=AlertSeverity.WARNING,
            threshold=self.config.battery_low_pct,
            band_width=0.5,
            band_includes_threshold=False,
        )

        self._fired: set[str] = set()
        self._last_values: dict[str, float] = {}
        self._sequence = itertools.count(1)

    def begin_session(self, already_fired: set[str], battery_pct: float | None = None) -> None:
        """
        Record crossings in the new session's ``already_fired`` set.

        The battery outlives sessions, so its current level is carried in as
        the starting point for the battery crossing.
        """
        self._fired = already_fired
        self._last_values.clear()
        if battery_pct is not None:
            self._last_values[self.battery_low.key] = battery_pct

    def _should_fire(self, rule: ThresholdRule, value: float) -> bool:
        if self.config.mode is AlertMode.BAND:
            return rule.in_band(value)

        previous = self._last_values.get(rule.key)
        self._last_values[rule.key] = value
        if rule.key in self._fired or previous is None:
            return False
        if previous >= rule.threshold > value:
            self._fired.add(rule.key)
            return True
        return False

    def _build_alert(
        self,
        severity: AlertSeverity,
        kind: AlertKind,
        message: str,
        now: datetime,
        context: dict[str, Any] | None,
    ) -> Alert:
        alert = Alert(
            alert_id=f"ALERT-{int(now.timestamp() * 1000)}-{next(self._sequence)}",
            pole_id=self.pole_id,
            severity=severity,
            kind=kind,
            message=message,
            timestamp=now,
            data=dict(context or {}),
        )
        self.logger.info(
            "alert_raised",
            alert_id=alert.alert_id,
            kind=kind.value,
            severity=severity.value,
            alert_message=message,
        )
        return alert

    def evaluate_fluid(
        self, remaining_pct: float, now: datetime, context: dict[str, Any] | None = None
    ) -> list[Alert]:
        alerts = []
        if self._should_fire(self.low_fluid_warning, remaining_pct):
            alerts.append(
                self._build_alert(
                    AlertSeverity.WARNING,
                    AlertKind.LOW_FLUID,
                    f"Remaining volume {remaining_pct:.1f}%",
                    now,
                    context,
                )
            )
        if self._should_fire(self.low_fluid_critical, remaining_pct):
            alerts.append(
                self._build_alert(
                    AlertSeverity.CRITICAL,
                    AlertKind.LOW_FLUID,
                    f"Critical - remaining volume {remaining_pct:.1f}%",
                    now,
                    context,
                )
            )
        return alerts

    def evaluate_battery(
        self, battery_pct: float, now: datetime, context: dict[str, Any] | None = None
    ) -> list[Alert]:
        if not self._should_fire(self.battery_low, battery_pct):
            return []
        return [
            self._build_alert(
                AlertSeverity.WARNING,
                AlertKind.BATTERY_LOW,
                f"Battery low: {int(battery_pct)}%",
                now,
                context,
            )
        ]

    def evaluate_flow(
        self, flow_rate_ml_per_min: float, now: datetime, context: dict[str, Any] | None = None
    ) -> list[Alert]:
        """Sporadic flow-sensor anomaly, independent of any threshold."""
        if self.flow_abnormal_probability <= 0:
            return []
        if self.rng.random() >= self.flow_abnormal_probability:
            return []
        abnormal_flow = flow_rate_ml_per_min * (0.5 + self.rng.random())
        return [
            self._build_alert(
                AlertSeverity.WARNING,
                AlertKind.FLOW_ABNORMAL,
                f"Flow abnormality: {abnormal_flow:.1f} mL/min",
                now,
                context,
            )
        ]

    def emergency_call(self, now: datetime, context: dict[str, Any] | None = None) -> Alert:
        return self._build_alert(
            AlertSeverity.CRITICAL,
            AlertKind.EMERGENCY_CALL,
            "Patient call button pressed",
            now,
            context,
        )

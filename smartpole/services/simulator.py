"""
Load-cell weight model for a draining IV bag.

The bag loses mass at the prescribed flow rate, with a little symmetric
jitter. While a large movement disturbance is active the decrement is
suppressed, since the load cell cannot be trusted during movement.
"""

import random
from datetime import UTC, datetime, timedelta

import structlog

from smartpole.domain.models import DeviceState, Session
from smartpole.observability import get_logger


class SimulationClock:
    """Simulated wall clock advanced explicitly by the tick loop."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime.now(UTC)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        self._now = self._now + timedelta(seconds=seconds)
        return self._now


class WeightSimulator:
    """Advances ``DeviceState`` weight and movement noise, one tick at a time."""

    JITTER_G = 0.05
    SUPPRESSION_NOISE_G = 5.0
    MOVEMENT_MIN_G = 10.0
    MOVEMENT_SPAN_G = 10.0
    DECAY_FACTOR = 0.9
    NOISE_FLOOR_G = 0.1

    def __init__(
        self,
        session: Session,
        state: DeviceState,
        rng: random.Random,
        tick_seconds: float = 1.0,
        jitter_g: float = JITTER_G,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.session = session
        self.state = state
        self.rng = rng
        self.tick_seconds = tick_seconds
        self.jitter_g = jitter_g
        self.logger = logger or get_logger("weight_simulator")

    @property
    def flow_rate_g_per_tick(self) -> float:
        return self.session.flow_rate_g_per_sec * self.tick_seconds

    def advance(self) -> bool:
        """Drain one tick of fluid. Returns False when the drain was skipped."""
        state = self.state
        if state.current_weight_g <= state.empty_container_weight_g:
            return False
        if state.movement_noise_g >= self.SUPPRESSION_NOISE_G:
            return False

        state.current_weight_g -= self.flow_rate_g_per_tick
        state.current_weight_g += self.rng.uniform(-self.jitter_g, self.jitter_g)
        return True

    def inject_movement(self) -> float:
        """Start a disturbance of 10-20 g and return its magnitude."""
        noise = self.MOVEMENT_MIN_G + self.rng.random() * self.MOVEMENT_SPAN_G
        self.state.movement_noise_g = noise
        self.logger.info("movement_injected", noise_g=round(noise, 2))
        return noise

    def decay_movement(self) -> float:
        noise = self.state.movement_noise_g
        if noise > 0:
            noise *= self.DECAY_FACTOR
            if noise < self.NOISE_FLOOR_G:
                noise = 0.0
                self.logger.debug("movement_settled")
            self.state.movement_noise_g = noise
        return noise


class BatteryModel:
    """Pole battery. Only ever drains; recharging is not modelled."""

    def __init__(self, level_pct: float = 95.0, floor_pct: float = 10.0) -> None:
        self.level_pct = max(floor_pct, min(100.0, level_pct))
        self.floor_pct = floor_pct

    def drain(self, amount_pct: float) -> float:
        self.level_pct = max(self.floor_pct, self.level_pct - amount_pct)
        return self.level_pct

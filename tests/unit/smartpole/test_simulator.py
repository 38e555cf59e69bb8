"""
Tests for the weight simulator, simulation clock and battery model.

Covers:
- Drain per tick at the prescribed rate, with and without jitter
- Suppression while a large movement disturbance is active
- Movement injection range and geometric decay to zero
- Empty-container floor
- Battery drain clamped at its floor
"""

import random
from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from smartpole.domain.models import DeviceState, SessionInput
from smartpole.services.session_factory import create_session
from smartpole.services.simulator import BatteryModel, SimulationClock, WeightSimulator

START = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)
FLOW_G_PER_SEC = 2.1 / 60


@pytest.fixture
def session():
    return create_session(SessionInput(), now=START)


@pytest.fixture
def state(session) -> DeviceState:
    return DeviceState.for_session(session)


def make_simulator(session, state, seed: int = 7, **kwargs) -> WeightSimulator:
    return WeightSimulator(session, state, random.Random(seed), **kwargs)


class TestSimulationClock:
    def test_advance_moves_time_forward(self) -> None:
        clock = SimulationClock(START)

        assert clock.advance(1.5) == START + timedelta(seconds=1.5)
        assert clock.now() == START + timedelta(seconds=1.5)

    def test_defaults_to_current_utc_time(self) -> None:
        before = datetime.now(UTC)
        clock = SimulationClock()

        assert clock.now() >= before
        assert clock.now().tzinfo is not None


class TestWeightSimulator:
    def test_first_tick_drains_prescribed_flow(self, session, state) -> None:
        simulator = make_simulator(session, state)

        assert simulator.advance() is True
        assert state.current_weight_g == pytest.approx(500.0 - FLOW_G_PER_SEC, abs=0.05)

    def test_drain_without_jitter_is_exact(self, session, state) -> None:
        simulator = make_simulator(session, state, jitter_g=0.0)

        for _ in range(60):
            simulator.advance()

        assert state.current_weight_g == pytest.approx(500.0 - 2.1)

    def test_tick_length_scales_drain(self, session, state) -> None:
        simulator = make_simulator(session, state, tick_seconds=10.0, jitter_g=0.0)

        assert simulator.flow_rate_g_per_tick == pytest.approx(0.35)
        simulator.advance()
        assert state.current_weight_g == pytest.approx(499.65)

    @given(seed=st.integers(min_value=0, max_value=2**32 - 1))
    @settings(max_examples=50)
    def test_per_tick_decrement_stays_within_jitter(self, seed: int) -> None:
        session = create_session(SessionInput(), now=START)
        state = DeviceState.for_session(session)
        simulator = WeightSimulator(session, state, random.Random(seed))

        for _ in range(20):
            before = state.current_weight_g
            simulator.advance()
            delta = before - state.current_weight_g
            assert FLOW_G_PER_SEC - 0.05 - 1e-9 <= delta <= FLOW_G_PER_SEC + 0.05 + 1e-9

    def test_large_disturbance_suppresses_drain(self, session, state) -> None:
        simulator = make_simulator(session, state)
        state.movement_noise_g = 12.0

        assert simulator.advance() is False
        assert state.current_weight_g == 500.0

    def test_small_disturbance_does_not_suppress_drain(self, session, state) -> None:
        simulator = make_simulator(session, state)
        state.movement_noise_g = 4.9

        assert simulator.advance() is True
        assert state.current_weight_g < 500.0 + 0.05

    def test_empty_container_stops_drain(self, session, state) -> None:
        simulator = make_simulator(session, state)
        state.current_weight_g = state.empty_container_weight_g

        assert simulator.advance() is False
        assert state.current_weight_g == 50.0

    def test_inject_movement_range(self, session, state) -> None:
        simulator = make_simulator(session, state)

        for _ in range(100):
            noise = simulator.inject_movement()
            assert 10.0 <= noise < 20.0
            assert state.movement_noise_g == noise

    def test_decay_multiplies_by_factor(self, session, state) -> None:
        simulator = make_simulator(session, state)
        state.movement_noise_g = 10.0

        assert simulator.decay_movement() == pytest.approx(9.0)
        assert simulator.decay_movement() == pytest.approx(8.1)

    def test_decay_snaps_to_zero_below_floor(self, session, state) -> None:
        simulator = make_simulator(session, state)
        state.movement_noise_g = 0.105

        assert simulator.decay_movement() == 0.0
        assert state.movement_noise_g == 0.0

    def test_injected_movement_settles_within_bounded_ticks(self, session, state) -> None:
        simulator = make_simulator(session, state)
        simulator.inject_movement()

        for _ in range(51):
            simulator.decay_movement()

        assert state.movement_noise_g == 0.0

    def test_decay_without_disturbance_is_noop(self, session, state) -> None:
        simulator = make_simulator(session, state)

        assert simulator.decay_movement() == 0.0

    def test_same_seed_same_trajectory(self, session) -> None:
        first = DeviceState.for_session(session)
        second = DeviceState.for_session(session)
        a = make_simulator(session, first, seed=42)
        b = make_simulator(session, second, seed=42)

        for _ in range(25):
            a.advance()
            b.advance()

        assert first.current_weight_g == second.current_weight_g


class TestBatteryModel:
    def test_drain_reduces_level(self) -> None:
        battery = BatteryModel(level_pct=95.0)

        assert battery.drain(0.1) == pytest.approx(94.9)

    def test_drain_never_goes_below_floor(self) -> None:
        battery = BatteryModel(level_pct=10.05, floor_pct=10.0)

        battery.drain(0.1)
        battery.drain(0.1)

        assert battery.level_pct == 10.0

    def test_initial_level_is_clamped(self) -> None:
        assert BatteryModel(level_pct=150.0).level_pct == 100.0
        assert BatteryModel(level_pct=5.0, floor_pct=10.0).level_pct == 10.0

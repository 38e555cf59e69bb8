"""
Tests for the asyncio tick scheduler.

Covers:
- Background ticking at the scaled interval
- Operator events serialized with ticks
- Stop cancelling the loop so no tick follows it
- Handler failures not breaking the loop
- Restart retiring a loop left over from the previous session
"""

import asyncio
import random
from datetime import UTC, datetime

import pytest

from smartpole.config import AppConfig, SimulationConfig
from smartpole.domain.errors import NotConnectedError
from smartpole.domain.models import PoleState, SessionInput
from smartpole.services import (
    InMemoryPublisher,
    PoleRunner,
    SimulationClock,
    SmartPoleController,
    TickReport,
)

START = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)


@pytest.fixture
def controller() -> SmartPoleController:
    config = AppConfig(simulation=SimulationConfig(time_scale=1000.0, seed=3))
    controller = SmartPoleController(
        config,
        publisher=InMemoryPublisher(),
        rng=random.Random(3),
        clock=SimulationClock(START),
    )
    controller.mark_connected()
    return controller


@pytest.fixture
def runner(controller: SmartPoleController) -> PoleRunner:
    return PoleRunner(controller)


async def wait_for_ticks(controller: SmartPoleController, count: int, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while controller.ticks < count:
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


class TestPoleRunner:
    def test_interval_is_scaled(self, runner: PoleRunner) -> None:
        assert runner.real_interval_seconds == pytest.approx(0.001)

    @pytest.mark.asyncio
    async def test_runs_ticks_in_background(
        self, runner: PoleRunner, controller: SmartPoleController
    ) -> None:
        reports: list[TickReport] = []
        runner.add_tick_handler(reports.append)

        result = await runner.start_session(SessionInput())
        assert result.is_ok()
        assert runner.is_running

        await wait_for_ticks(controller, 5)
        await runner.stop_session()

        assert [r.tick for r in reports[:5]] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_stop_prevents_further_ticks(
        self, runner: PoleRunner, controller: SmartPoleController
    ) -> None:
        await runner.start_session(SessionInput())
        await wait_for_ticks(controller, 3)

        stopped = await runner.stop_session()
        ticks_at_stop = controller.ticks
        await asyncio.sleep(0.05)

        assert stopped.is_ok()
        assert controller.state is PoleState.STOPPED
        assert controller.ticks == ticks_at_stop
        assert not runner.is_running

    @pytest.mark.asyncio
    async def test_operator_events_between_ticks(
        self, runner: PoleRunner, controller: SmartPoleController
    ) -> None:
        await runner.start_session(SessionInput())
        await wait_for_ticks(controller, 2)

        noise = (await runner.inject_movement()).unwrap()
        alert = (await runner.emergency_call()).unwrap()
        await wait_for_ticks(controller, controller.ticks + 1)
        await runner.stop_session()

        assert 10.0 <= noise < 20.0
        assert alert.severity.value == "CRITICAL"

    @pytest.mark.asyncio
    async def test_start_when_not_connected_does_not_spawn_loop(self) -> None:
        controller = SmartPoleController(publisher=InMemoryPublisher())
        runner = PoleRunner(controller)

        result = await runner.start_session(SessionInput())

        assert isinstance(result.unwrap_err(), NotConnectedError)
        assert not runner.is_running

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_stop_loop(
        self, runner: PoleRunner, controller: SmartPoleController
    ) -> None:
        def broken(report: TickReport) -> None:
            raise RuntimeError("display offline")

        seen: list[int] = []
        runner.add_tick_handler(broken)
        runner.add_tick_handler(lambda report: seen.append(report.tick))

        await runner.start_session(SessionInput())
        await wait_for_ticks(controller, 3)
        await runner.stop_session()

        assert seen[:3] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_loop_ends_when_session_stopped_directly(
        self, runner: PoleRunner, controller: SmartPoleController
    ) -> None:
        await runner.start_session(SessionInput())
        await wait_for_ticks(controller, 1)

        controller.stop_session()
        await asyncio.sleep(0.05)

        assert not runner.is_running

    @pytest.mark.asyncio
    async def test_ticks_generator_yields_reports(self, controller: SmartPoleController) -> None:
        controller.start_session(SessionInput())
        runner = PoleRunner(controller)

        reports = []
        async for report in runner.ticks():
            reports.append(report)
            if len(reports) == 3:
                controller.stop_session()

        assert [r.tick for r in reports] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_restart_retires_previous_loop(
        self, runner: PoleRunner, controller: SmartPoleController
    ) -> None:
        await runner.start_session(SessionInput())
        await wait_for_ticks(controller, 2)
        first_loop = runner._task

        # Stopped behind the runner's back, then restarted before the old
        # loop wakes up to notice.
        controller.stop_session()
        await runner.start_session(SessionInput())

        live_loops = [
            task
            for task in asyncio.all_tasks()
            if task.get_name().startswith("pole-ticks-") and not task.done()
        ]
        assert first_loop is not None and first_loop.done()
        assert live_loops == [runner._task]

        await wait_for_ticks(controller, 3)
        await runner.stop_session()

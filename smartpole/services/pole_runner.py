"""
Asyncio scheduler for a pole's tick cadence.

One loop drives ``SmartPoleController.tick()``; the status/battery cadence
rides on the same tick counter, so no two timers ever race on device state.
Operator events (movement, emergency call, stop) share the runner's lock
with the tick, which makes them visible only between ticks.
"""

import asyncio
from collections.abc import AsyncIterator, Callable

import structlog

from smartpole.domain.errors import PoleStateError
from smartpole.domain.models import Alert, Session, SessionInput
from smartpole.observability import get_logger
from smartpole.result import Result
from smartpole.services.pole_controller import SmartPoleController, TickReport

TickHandler = Callable[[TickReport], None]


class PoleRunner:
    """Runs ticks in the background and serializes operator events against them."""

    def __init__(
        self,
        controller: SmartPoleController,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.controller = controller
        simulation = controller.config.simulation
        self.real_interval_seconds = simulation.tick_interval_seconds / simulation.time_scale
        self.logger = (logger or get_logger("pole_runner")).bind(pole_id=controller.pole_id)

        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._handlers: list[TickHandler] = []

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_tick_handler(self, handler: TickHandler) -> None:
        self._handlers.append(handler)

    async def start_session(
        self, session_input: SessionInput | None = None
    ) -> Result[Session, PoleStateError]:
        """Start a session and its tick loop, retiring any loop left from the last one."""
        async with self._lock:
            result = self.controller.start_session(session_input)
            if result.is_ok():
                # The old loop may still be asleep if the session was stopped
                # on the controller directly; it must not tick the new one.
                await self._cancel_loop()
        if result.is_ok():
            self._task = asyncio.create_task(
                self._run(), name=f"pole-ticks-{self.controller.pole_id}"
            )
        return result

    async def ticks(self) -> AsyncIterator[TickReport]:
        """
        Yield one report per tick until the session is no longer active.

        The tick itself runs under the lock; the report is yielded after
        releasing it so consumers can issue operator events freely.
        """
        while True:
            await asyncio.sleep(self.real_interval_seconds)
            async with self._lock:
                result = self.controller.tick()
            if result.is_err():
                return
            yield result.unwrap()

    async def _run(self) -> None:
        self.logger.info("tick_loop_started", interval_seconds=self.real_interval_seconds)
        try:
            async for report in self.ticks():
                for handler in self._handlers:
                    try:
                        handler(report)
                    except Exception as e:
                        self.logger.error("tick_handler_failed", error=str(e), tick=report.tick)
        except asyncio.CancelledError:
            self.logger.info("tick_loop_cancelled")
            raise
        self.logger.info("tick_loop_finished", ticks=self.controller.ticks)

    async def inject_movement(self) -> Result[float, PoleStateError]:
        async with self._lock:
            return self.controller.inject_movement()

    async def emergency_call(self) -> Result[Alert, PoleStateError]:
        async with self._lock:
            return self.controller.emergency_call()

    async def stop_session(self) -> Result[Session, PoleStateError]:
        """Stop immediately; no tick runs once this has taken the lock."""
        async with self._lock:
            result = self.controller.stop_session()
        await self._cancel_loop()
        return result

    async def _cancel_loop(self) -> None:
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.wait({task})

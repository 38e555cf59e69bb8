"""
End-to-end demo of one simulated IV pole.

This script:
1. Loads configuration and sets up logging
2. Connects to a broker (POLE_TRANSPORT=mqtt) or an in-memory publisher
3. Starts a nurse-entered session and runs it on the asyncio scheduler
4. Bumps the pole and presses the nurse-call button mid-run
5. Fast-forwards the bag towards empty to show the low-fluid alerts

Run with: uv run python run_pole.py
"""

import asyncio
import os

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from smartpole.config import AppConfig, get_config
from smartpole.domain.models import PoleState, SessionInput
from smartpole.observability import configure_logging
from smartpole.services import InMemoryPublisher, PoleRunner, SmartPoleController, TickReport

console = Console()


def build_controller(config: AppConfig) -> tuple[SmartPoleController, InMemoryPublisher | None]:
    """Wire the controller to its transport. The MQTT transport needs a running event loop."""
    if os.getenv("POLE_TRANSPORT", "memory").strip().lower() == "mqtt":
        from adapters.mqtt.publisher import MqttPublisher

        controller = SmartPoleController(config)
        loop = asyncio.get_running_loop()
        # paho calls back on its network thread; state changes belong to the loop.
        publisher = MqttPublisher(
            config.mqtt,
            client_id=config.pole.pole_id,
            on_connected=lambda: loop.call_soon_threadsafe(controller.mark_connected),
        )
        controller.publisher = publisher
        publisher.connect()
        return controller, None

    memory = InMemoryPublisher()
    controller = SmartPoleController(config, publisher=memory)
    controller.mark_connected()
    return controller, memory


def print_tick(report: TickReport) -> None:
    telemetry = report.telemetry.telemetry
    stable = "[green]stable[/green]" if telemetry.is_stable else "[yellow]movement[/yellow]"
    console.print(
        f"tick {report.tick:>4}  weight {telemetry.weight:7.2f} g  "
        f"remaining {telemetry.remaining:5.1f}%  {stable}"
    )
    for alert in report.alerts:
        console.print(f"  ALERT {alert.severity.value} {alert.kind.value}: {alert.message}", style="red")


async def run_live(controller: SmartPoleController, live_ticks: int) -> PoleRunner | None:
    console.print(Panel("Live session on the scheduler", style="blue"))

    runner = PoleRunner(controller)
    runner.add_tick_handler(print_tick)

    session_input = SessionInput(
        patient_id="PAT-20391",
        drug_type="Normal Saline",
        initial_volume_ml="500",
        prescribed_duration_min="240",
    )
    result = await runner.start_session(session_input)
    if result.is_err():
        console.print(f"Session not started: {result.unwrap_err()}", style="red")
        return None

    session = result.unwrap()
    console.print(
        f"Session {session.session_id}: {session.drug_type}, {session.initial_volume_ml:.0f} mL "
        f"over {session.prescribed_duration_min} min at {session.prescribed_drip_rate_gtt} gtt/min"
    )

    while controller.ticks < live_ticks // 3:
        await asyncio.sleep(runner.real_interval_seconds)
    noise = (await runner.inject_movement()).unwrap_or(0.0)
    console.print(f"Pole bumped, disturbance {noise:.1f} g", style="yellow")

    while controller.ticks < 2 * live_ticks // 3:
        await asyncio.sleep(runner.real_interval_seconds)
    await runner.emergency_call()
    console.print("Nurse call sent", style="red")

    while controller.ticks < live_ticks:
        await asyncio.sleep(runner.real_interval_seconds)
    return runner


def fast_forward(controller: SmartPoleController, until_pct: float) -> list[TickReport]:
    """Tick synchronously until the bag drops below ``until_pct``.

    Never awaits, so the background loop cannot interleave with it.
    """
    reports = []
    while True:
        result = controller.tick()
        if result.is_err():
            break
        report = result.unwrap()
        if report.alerts:
            reports.append(report)
        if report.telemetry.telemetry.remaining < until_pct:
            break
    return reports


def print_summary(controller: SmartPoleController, memory: InMemoryPublisher | None) -> None:
    summary = controller.status_summary()

    summary_table = Table(title="Pole Summary")
    summary_table.add_column("Field", style="cyan")
    summary_table.add_column("Value", style="white")
    for key, value in summary.items():
        summary_table.add_row(key, str(value))
    console.print(summary_table)

    if memory is None:
        return

    topic_table = Table(title="Published Messages")
    topic_table.add_column("Topic", style="cyan")
    topic_table.add_column("QoS", style="white")
    topic_table.add_column("Count", style="white")
    counts: dict[tuple[str, int], int] = {}
    for message in memory.messages:
        key = (message.topic, int(message.qos))
        counts[key] = counts.get(key, 0) + 1
    for (topic, qos), count in sorted(counts.items()):
        topic_table.add_row(topic, str(qos), str(count))
    console.print(topic_table)


async def main() -> None:
    config = get_config()
    if config.simulation.time_scale == 1.0:
        config = config.model_copy(
            update={"simulation": config.simulation.model_copy(update={"time_scale": 50.0})}
        )
    configure_logging(config.logging)

    console.print(Panel(f"Smart IV Pole {config.pole.pole_id} (bed {config.pole.bed})", style="bold blue"))

    controller, memory = build_controller(config)
    for _ in range(50):
        if controller.state is not PoleState.IDLE:
            break
        await asyncio.sleep(0.1)
    else:
        console.print("Broker did not accept the connection", style="red")
        return

    runner = await run_live(controller, live_ticks=30)
    if runner is None:
        return

    console.print(Panel("Fast-forward towards empty", style="blue"))
    for report in fast_forward(controller, until_pct=4.0):
        print_tick(report)

    print_summary(controller, memory)
    await runner.stop_session()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        console.print("\nStopped by user", style="yellow")

"""
Core services for the pole simulation.

This package contains the weight simulator, stability detector, telemetry
composer, alert policy and the state machine and scheduler that sequence them.
"""

from .alert_policy import AlertPolicy
from .pole_controller import SmartPoleController, TickReport
from .pole_runner import PoleRunner
from .publishers import InMemoryPublisher, LoggingPublisher, MessagePublisher
from .session_factory import create_session
from .simulator import BatteryModel, SimulationClock, WeightSimulator
from .stability import StabilityDetector
from .telemetry import TelemetryComposer

__all__ = [
    "AlertPolicy",
    "BatteryModel",
    "InMemoryPublisher",
    "LoggingPublisher",
    "MessagePublisher",
    "PoleRunner",
    "SimulationClock",
    "SmartPoleController",
    "StabilityDetector",
    "TelemetryComposer",
    "TickReport",
    "WeightSimulator",
    "create_session",
]

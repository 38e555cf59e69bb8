"""
Configuration management with environment variable support and validation.

Design principles:
- One pydantic section per subsystem (pole, simulation, alerts, transport, logging)
- Validation at startup (fail fast)
- Environment overrides, optionally via a .env file
"""

import os
from enum import Enum
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class AlertMode(str, Enum):
    """How threshold alerts decide to fire."""

    EDGE = "edge"  # once per downward crossing, reset on session start
    BAND = "band"  # while the value sits inside a narrow band below the threshold


class PoleConfig(BaseModel):
    """Identity and battery characteristics of the simulated pole."""

    pole_id: str = Field(default="POLE-301A-1", min_length=1, description="Device identity")
    bed: str = Field(default="301A-1", min_length=1, description="Bed the pole serves")
    initial_battery_pct: float = Field(default=95.0, ge=10.0, le=100.0)
    battery_drain_per_status_pct: float = Field(
        default=0.1, ge=0.0, description="Battery consumed per status report"
    )
    battery_floor_pct: float = Field(default=10.0, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def floor_below_initial(self) -> "PoleConfig":
        if self.battery_floor_pct > self.initial_battery_pct:
            raise ValueError("battery floor cannot exceed the initial battery level")
        return self


class SimulationConfig(BaseModel):
    """Tick cadence and randomness of the simulation."""

    tick_interval_seconds: float = Field(
        default=1.0, gt=0.0, description="Simulated seconds per tick"
    )
    status_every_ticks: int = Field(
        default=30, gt=0, description="Ticks between status/battery reports"
    )
    time_scale: float = Field(
        default=1.0, gt=0.0, description="Simulated seconds per real second"
    )
    seed: int | None = Field(default=None, description="Seed for jitter and noise")
    flow_abnormal_probability: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Per-tick chance of a FLOW_ABNORMAL alert"
    )


class AlertConfig(BaseModel):
    """Alert thresholds and firing strategy."""

    mode: AlertMode = Field(default=AlertMode.EDGE)
    low_fluid_warning_pct: float = Field(default=10.0, gt=0.0, le=100.0)
    low_fluid_critical_pct: float = Field(default=5.0, gt=0.0, le=100.0)
    battery_low_pct: float = Field(default=20.0, gt=0.0, le=100.0)

    @model_validator(mode="after")
    def critical_below_warning(self) -> "AlertConfig":
        if self.low_fluid_critical_pct >= self.low_fluid_warning_pct:
            raise ValueError("critical low-fluid threshold must be below the warning threshold")
        return self


class MqttConfig(BaseModel):
    """Broker connection used by the MQTT adapter."""

    host: str = Field(default="localhost", description="Broker host")
    port: int = Field(default=1883, gt=0, lt=65536, description="Broker port")
    keepalive_seconds: int = Field(default=60, gt=0)
    client_id: str | None = Field(default=None, description="Defaults to the pole id")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    pole: PoleConfig = Field(default_factory=PoleConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    alerts: AlertConfig = Field(default_factory=AlertConfig)
    mqtt: MqttConfig = Field(default_factory=MqttConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _optional_int(val: str | None) -> int | None:
        if val is None or not val.strip():
            return None
        return int(val)

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))

    pole_config = PoleConfig(
        pole_id=os.getenv("POLE_ID", "POLE-301A-1"),
        bed=os.getenv("POLE_BED", "301A-1"),
        initial_battery_pct=float(os.getenv("POLE_INITIAL_BATTERY_PCT", "95.0")),
        battery_drain_per_status_pct=float(os.getenv("POLE_BATTERY_DRAIN_PCT", "0.1")),
    )

    simulation_config = SimulationConfig(
        tick_interval_seconds=float(os.getenv("SIM_TICK_INTERVAL_SECONDS", "1.0")),
        status_every_ticks=int(os.getenv("SIM_STATUS_EVERY_TICKS", "30")),
        time_scale=float(os.getenv("SIM_TIME_SCALE", "1.0")),
        seed=_optional_int(os.getenv("SIM_SEED")),
        flow_abnormal_probability=float(os.getenv("SIM_FLOW_ABNORMAL_PROBABILITY", "0.0")),
    )

    alert_config = AlertConfig(mode=AlertMode(os.getenv("ALERT_MODE", "edge").strip().lower()))

    mqtt_broker = os.getenv("MQTT_BROKER_HOST", "localhost")
    mqtt_config = MqttConfig(
        host=mqtt_broker,
        port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        keepalive_seconds=int(os.getenv("MQTT_KEEPALIVE_SECONDS", "60")),
        client_id=os.getenv("MQTT_CLIENT_ID") or None,
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if environment == "development" else "json",
    )

    return AppConfig(
        environment=environment,
        pole=pole_config,
        simulation=simulation_config,
        alerts=alert_config,
        mqtt=mqtt_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()

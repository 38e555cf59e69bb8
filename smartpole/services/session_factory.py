"""Prescription session construction."""

import math
from datetime import UTC, datetime, timedelta

from smartpole.domain.models import Session, SessionInput


def drip_rate_gtt(volume_ml: float, gtt_factor: int, duration_min: int) -> int:
    """Drops per minute needed to infuse ``volume_ml`` over ``duration_min``.

    Rounds half up, so 12.5 drops becomes 13 rather than 12.
    """
    return int(math.floor(volume_ml * gtt_factor / duration_min + 0.5))


def create_session(session_input: SessionInput | None = None, now: datetime | None = None) -> Session:
    """
    Build an immutable ``Session`` from nurse input.

    Defaults have already been applied by ``SessionInput``; this only derives
    the drip rate and timing. There is no failure path.
    """
    session_input = session_input or SessionInput()
    start_time = now or datetime.now(UTC)

    return Session(
        session_id=f"SES-{int(start_time.timestamp() * 1000)}",
        patient_id=session_input.patient_id,
        drug_type=session_input.drug_type,
        initial_volume_ml=session_input.initial_volume_ml,
        initial_weight_g=session_input.initial_volume_ml,
        prescribed_duration_min=session_input.prescribed_duration_min,
        prescribed_drip_rate_gtt=drip_rate_gtt(
            session_input.initial_volume_ml,
            session_input.gtt_factor,
            session_input.prescribed_duration_min,
        ),
        gtt_factor=session_input.gtt_factor,
        start_time=start_time,
        prescribed_end_time=start_time + timedelta(minutes=session_input.prescribed_duration_min),
        nurse_id=session_input.nurse_id,
    )

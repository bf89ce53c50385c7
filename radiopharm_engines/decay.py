"""
radiopharm_engines.decay -- Radioactive decay mathematics.

Responsibility:
    Exponential decay of activity, back-calculation of the activity that
    must be produced to meet a target later, shelf-life checks and backward
    scheduling of production stages from a fixed delivery deadline.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import radiopharm_kernel.exceptions and the engine tracer.

Invariants enforced:
    - Purity: no clock access; every instant is passed in.
    - ``A(t) = A0 * exp(-lambda * t)`` with ``lambda = ln(2) / half_life``.
    - ``decayed_activity`` and ``required_initial_activity`` are inverses
      for the same half-life and elapsed time.
    - ``elapsed_minutes`` is signed.  Ordering is validated by the call
      sites that care (``is_within_shelf_life``), never by clamping here.

Failure modes:
    - InvalidParameterError for a non-positive or non-finite half-life.
    - InvalidParameterError for non-datetime instants, or when a naive and
      an aware datetime are mixed.
    - Valid-domain numeric inputs (positive half-life, any real elapsed
      value) never fail.  A growth factor beyond float range saturates to
      an infinite activity carrying the sign of the scaled amount.

Units:
    Half-lives, durations and elapsed times are minutes.  Activities use
    any consistent unit (mCi, MBq); the functions are unit-agnostic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from radiopharm_engines.tracer import traced_engine
from radiopharm_kernel.exceptions import InvalidParameterError

LN2 = math.log(2)


@dataclass(frozen=True)
class BackwardSchedule:
    """Latest start instants for each production stage, derived from delivery."""

    dispatch_time: datetime
    packaging_start: datetime
    qc_start: datetime
    synthesis_start: datetime


def _check_half_life(half_life: float) -> float:
    if isinstance(half_life, bool) or not isinstance(half_life, (int, float)):
        raise InvalidParameterError("half_life", half_life, "must be a number")
    if not math.isfinite(half_life) or half_life <= 0:
        raise InvalidParameterError("half_life", half_life, "must be positive and finite")
    return float(half_life)


def _scale(amount: float, exponent: float) -> float:
    """``amount * exp(exponent)``, saturating instead of overflowing."""
    try:
        return amount * math.exp(exponent)
    except OverflowError:
        if amount == 0:
            return 0.0
        return math.copysign(math.inf, amount)


def _check_instant(name: str, value: datetime) -> datetime:
    if not isinstance(value, datetime):
        raise InvalidParameterError(name, value, "must be a datetime")
    return value


def decay_constant(half_life: float) -> float:
    """Return ``ln(2) / half_life`` (per minute).

    F-18 (109.8 min) gives about 0.00631; Tc-99m (360.6 min) about 0.00192.
    """
    return LN2 / _check_half_life(half_life)


def decayed_activity(initial: float, half_life: float, elapsed_minutes: float) -> float:
    """Activity remaining from ``initial`` after ``elapsed_minutes``.

    A negative elapsed time back-extrapolates (the result exceeds ``initial``).
    """
    lam = decay_constant(half_life)
    return _scale(initial, -lam * elapsed_minutes)


def required_initial_activity(target: float, half_life: float, elapsed_minutes: float) -> float:
    """Activity needed now so that ``target`` remains after ``elapsed_minutes``."""
    lam = decay_constant(half_life)
    return _scale(target, lam * elapsed_minutes)


def elapsed_minutes(start: datetime, end: datetime) -> float:
    """Signed minutes from ``start`` to ``end``; negative when ``end`` precedes ``start``."""
    start = _check_instant("start", start)
    end = _check_instant("end", end)
    if (start.tzinfo is None) != (end.tzinfo is None):
        raise InvalidParameterError(
            "end",
            end,
            "cannot compare naive and timezone-aware datetimes",
        )
    return (end - start).total_seconds() / 60.0


def is_within_shelf_life(
    production_time: datetime,
    target_time: datetime,
    shelf_life_minutes: float,
) -> bool:
    """True iff ``target_time`` is not before production and within shelf life.

    Both boundaries are inclusive: ``target == production`` and
    ``elapsed == shelf_life`` are within.
    """
    elapsed = elapsed_minutes(production_time, target_time)
    return 0 <= elapsed <= shelf_life_minutes


@traced_engine(
    "decay", "1.0",
    fingerprint_fields=("calibrated_activity", "calibration_time", "target_time", "half_life"),
)
def activity_at_time(
    calibrated_activity: float,
    calibration_time: datetime,
    target_time: datetime,
    half_life: float,
) -> float:
    """Activity at ``target_time`` of a dose calibrated at ``calibration_time``."""
    elapsed = elapsed_minutes(calibration_time, target_time)
    return decayed_activity(calibrated_activity, half_life, elapsed)


@traced_engine("decay", "1.0", fingerprint_fields=("delivery_time",))
def backward_schedule(
    delivery_time: datetime,
    dispatch_lead_minutes: float,
    packaging_minutes: float,
    qc_minutes: float,
    synthesis_minutes: float,
) -> BackwardSchedule:
    """Derive stage start times by successive subtraction from ``delivery_time``.

    >>> s = backward_schedule(datetime(2024, 1, 1, 10, 0), 60, 15, 30, 45)
    >>> s.synthesis_start
    datetime.datetime(2024, 1, 1, 7, 30)
    """
    delivery_time = _check_instant("delivery_time", delivery_time)
    dispatch_time = delivery_time - timedelta(minutes=dispatch_lead_minutes)
    packaging_start = dispatch_time - timedelta(minutes=packaging_minutes)
    qc_start = packaging_start - timedelta(minutes=qc_minutes)
    synthesis_start = qc_start - timedelta(minutes=synthesis_minutes)
    return BackwardSchedule(
        dispatch_time=dispatch_time,
        packaging_start=packaging_start,
        qc_start=qc_start,
        synthesis_start=synthesis_start,
    )


@traced_engine(
    "decay", "1.0",
    fingerprint_fields=("required_activity", "half_life", "injection_time", "production_time"),
)
def production_activity_with_overage(
    required_activity: float,
    half_life: float,
    injection_time: datetime,
    production_time: datetime,
    overage_percent: float,
) -> float:
    """Activity to produce at ``production_time`` to deliver ``required_activity``
    at ``injection_time``, plus ``overage_percent`` to absorb delay risk.
    """
    elapsed = elapsed_minutes(production_time, injection_time)
    at_production = required_initial_activity(required_activity, half_life, elapsed)
    return at_production * (1 + overage_percent / 100)

"""
radiopharm_engines.planning -- Production planning for a single order.

Responsibility:
    Turn an order's delivery window and requested activity into a
    production plan: the latest start of each production stage, the
    activity that must be produced at synthesis start (including overage),
    and a shelf-life feasibility verdict.  Also computes the activity a
    dispatched dose carries when it leaves and when it is expected to
    arrive.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Built on ``radiopharm_engines.decay``.

Invariants enforced:
    - Dispatch lead time is the customer's travel time.
    - Activity is back-calculated to synthesis start from the injection
      time, or from the delivery time when no injection time is given.
    - Feasibility is the shelf life measured from synthesis start to
      delivery, both boundaries inclusive.

Failure modes:
    - OrderNotFeasibleError when delivery falls outside shelf life.
    - InvalidParameterError propagated from the decay functions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from radiopharm_engines.decay import (
    BackwardSchedule,
    activity_at_time,
    backward_schedule,
    is_within_shelf_life,
    production_activity_with_overage,
)
from radiopharm_engines.tracer import traced_engine
from radiopharm_kernel.exceptions import OrderNotFeasibleError


@dataclass(frozen=True)
class ProductTiming:
    """Per-product decay and process parameters (minutes)."""

    half_life_minutes: float
    shelf_life_minutes: float
    synthesis_minutes: float
    qc_minutes: float
    packaging_minutes: float
    overage_percent: float | None = None


@dataclass(frozen=True)
class PlanningRequest:
    """What the customer asked for and where it must go."""

    requested_activity: float
    delivery_time: datetime
    travel_time_minutes: float
    product: ProductTiming
    injection_time: datetime | None = None


@dataclass(frozen=True)
class ProductionPlan:
    schedule: BackwardSchedule
    target_time: datetime
    delivery_time: datetime
    production_activity: float
    overage_percent: float

    @property
    def calibration_time(self) -> datetime:
        return self.schedule.synthesis_start


@dataclass(frozen=True)
class TransitActivity:
    """Activity of a dispatched dose; None where the instant is not known yet."""

    at_dispatch: float | None
    at_delivery: float | None


@traced_engine("planning", "1.0", fingerprint_fields=("request", "default_overage_percent"))
def plan_production(
    *,
    request: PlanningRequest,
    default_overage_percent: float = 0.0,
) -> ProductionPlan:
    """Plan production for one order.

    Raises:
        OrderNotFeasibleError: the product would exceed its shelf life
            between synthesis start and delivery.
    """
    product = request.product
    schedule = backward_schedule(
        request.delivery_time,
        request.travel_time_minutes,
        product.packaging_minutes,
        product.qc_minutes,
        product.synthesis_minutes,
    )

    if not is_within_shelf_life(
        schedule.synthesis_start, request.delivery_time, product.shelf_life_minutes,
    ):
        raise OrderNotFeasibleError(
            shelf_life_minutes=product.shelf_life_minutes,
            estimated_production_time=schedule.synthesis_start,
            delivery_time=request.delivery_time,
        )

    overage = (
        product.overage_percent
        if product.overage_percent is not None
        else default_overage_percent
    )
    target_time = request.injection_time or request.delivery_time
    production_activity = production_activity_with_overage(
        request.requested_activity,
        product.half_life_minutes,
        target_time,
        schedule.synthesis_start,
        overage,
    )

    return ProductionPlan(
        schedule=schedule,
        target_time=target_time,
        delivery_time=request.delivery_time,
        production_activity=production_activity,
        overage_percent=overage,
    )


def activity_in_transit(
    calibrated_activity: float | None,
    calibration_time: datetime | None,
    half_life_minutes: float,
    departure_time: datetime | None,
    expected_arrival_time: datetime | None,
) -> TransitActivity:
    """Activity at departure and at expected arrival.

    Without a measured activity and calibration time both values are None;
    otherwise each is None only while its instant is unknown.
    """
    if calibrated_activity is None or calibration_time is None:
        return TransitActivity(at_dispatch=None, at_delivery=None)

    at_dispatch = None
    if departure_time is not None:
        at_dispatch = activity_at_time(
            calibrated_activity, calibration_time, departure_time, half_life_minutes,
        )
    at_delivery = None
    if expected_arrival_time is not None:
        at_delivery = activity_at_time(
            calibrated_activity, calibration_time, expected_arrival_time, half_life_minutes,
        )
    return TransitActivity(at_dispatch=at_dispatch, at_delivery=at_delivery)

"""
Attribution calculator - distribute conversion credit across touchpoints.

Supports five attribution models:
- First-touch: 100% credit to the first touchpoint
- Last-touch: 100% credit to the last touchpoint
- Linear: Equal credit to all touchpoints
- Time-decay: Exponential decay with a 7-day (168 hour) half-life
- U-shaped: 40% first, 40% last, 20% spread across the middle

The calculator is a pure function over an in-memory list. It never mutates
its input and performs no I/O, so it is safe to call concurrently.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from pathcredit.attribution.exceptions import InternalError, NotFoundError
from pathcredit.attribution.schema import (
    AttributionCalculationRequest,
    AttributionEvent,
    AttributionModel,
    AttributionResult,
    AttributionTouchpoint,
    as_utc,
)

logger = logging.getLogger(__name__)

TIME_DECAY_HALF_LIFE_HOURS = 168
WEIGHT_TOLERANCE = 1e-6

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MS_PER_HOUR = 3_600_000


def calculate_attribution(request: AttributionCalculationRequest) -> AttributionResult:
    """
    Calculate attribution for a conversion event.

    Args:
        request: Conversion id, model and the user's touchpoint history
            (any order).

    Returns:
        AttributionResult with touchpoints in chronological order.

    Raises:
        InvalidArgumentError: If the model identifier is not supported.
        NotFoundError: If the conversion event is not among the touchpoints.
    """
    model = AttributionModel.parse(request.model)

    if not request.touchpoints:
        logger.debug(f"No touchpoints for conversion {request.conversion_event_id}")
        return AttributionResult(
            conversion_event_id=request.conversion_event_id,
            model=model,
            touchpoints=[],
            total_attributed_value=0,
        )

    conversion_event = _find_conversion(request.touchpoints, request.conversion_event_id)
    if conversion_event is None:
        raise NotFoundError(
            f"Conversion event {request.conversion_event_id} not found in touchpoints"
        )

    sorted_touchpoints = sort_touchpoints(request.touchpoints)
    conversion_value = conversion_event.event_value or 0
    conversion_ms = _epoch_ms(conversion_event.event_timestamp)

    hours = [
        hours_between(_epoch_ms(tp.event_timestamp), conversion_ms)
        for tp in sorted_touchpoints
    ]
    weights = calculate_weights(model, len(sorted_touchpoints), hours)

    touchpoints = [
        AttributionTouchpoint(
            touchpoint_event_id=tp.id,
            channel_id=tp.channel_id,
            position=index + 1,
            weight=weight,
            attributed_value=weight * conversion_value,
            time_to_conversion_hours=hours_to_conversion,
        )
        for index, (tp, weight, hours_to_conversion) in enumerate(
            zip(sorted_touchpoints, weights, hours)
        )
    ]

    return AttributionResult(
        conversion_event_id=request.conversion_event_id,
        model=model,
        touchpoints=touchpoints,
        total_attributed_value=conversion_value,
    )


def calculate_weights(
    model: AttributionModel | str,
    count: int,
    hours_to_conversion: Sequence[float] | None = None,
) -> list[float]:
    """
    Calculate per-position weights for a chronologically sorted journey.

    Args:
        model: Attribution model
        count: Number of touchpoints
        hours_to_conversion: Hours from each touchpoint to the conversion,
            required by the time-decay model

    Returns:
        List of weights summing to 1.0 (empty when count is 0)

    Raises:
        InvalidArgumentError: If the model is not supported.
        InternalError: If the weights fail to sum to 1.0.
    """
    model = AttributionModel.parse(model)

    if count == 0:
        return []
    if count == 1:
        return [1.0]

    if model == AttributionModel.FIRST_TOUCH:
        weights = _first_touch_weights(count)
    elif model == AttributionModel.LAST_TOUCH:
        weights = _last_touch_weights(count)
    elif model == AttributionModel.LINEAR:
        weights = _linear_weights(count)
    elif model == AttributionModel.TIME_DECAY:
        if hours_to_conversion is None or len(hours_to_conversion) != count:
            raise InternalError("Time-decay weights need one time-to-conversion per touchpoint")
        weights = _time_decay_weights(hours_to_conversion)
    else:
        weights = _u_shaped_weights(count)

    total = math.fsum(weights)
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise InternalError(f"{model.value} weights sum to {total}, expected 1.0")

    return weights


def sort_touchpoints(touchpoints: Sequence[AttributionEvent]) -> list[AttributionEvent]:
    """Return a new list sorted by timestamp, ties broken by event id."""
    return sorted(
        touchpoints,
        key=lambda tp: (_epoch_ms(tp.event_timestamp), _id_sort_key(tp.id)),
    )


def hours_between(start_ms: int, end_ms: int) -> float:
    """Hours from start to end, clamped at zero."""
    return max(0.0, (end_ms - start_ms) / _MS_PER_HOUR)


def _find_conversion(
    touchpoints: Sequence[AttributionEvent],
    conversion_event_id: object,
) -> AttributionEvent | None:
    for tp in touchpoints:
        if tp.id == conversion_event_id:
            return tp
    return None


def _epoch_ms(timestamp: datetime) -> int:
    """Milliseconds since the epoch; naive datetimes are read as UTC."""
    return (as_utc(timestamp) - _EPOCH) // timedelta(milliseconds=1)


def _id_sort_key(event_id: object) -> tuple[int, object]:
    # Numeric ids sort before string ids so mixed sources still compare.
    if isinstance(event_id, int | float):
        return (0, event_id)
    return (1, str(event_id))


def _first_touch_weights(count: int) -> list[float]:
    """100% to the first touchpoint."""
    weights = [0.0] * count
    weights[0] = 1.0
    return weights


def _last_touch_weights(count: int) -> list[float]:
    """100% to the last touchpoint."""
    weights = [0.0] * count
    weights[-1] = 1.0
    return weights


def _linear_weights(count: int) -> list[float]:
    return [1.0 / count] * count


def _time_decay_weights(hours_to_conversion: Sequence[float]) -> list[float]:
    """
    More credit to recent touchpoints.

    raw = e^(-λt) with λ = ln(2) / half-life, then normalized to sum to 1.
    """
    decay = math.log(2) / TIME_DECAY_HALF_LIFE_HOURS
    raw = [math.exp(-decay * hours) for hours in hours_to_conversion]
    total = math.fsum(raw)
    return [weight / total for weight in raw]


def _u_shaped_weights(count: int) -> list[float]:
    """
    40% to first, 40% to last, 20% distributed to middle.
    """
    if count == 2:
        return [0.5, 0.5]

    middle_weight = 0.2 / (count - 2)
    weights = [middle_weight] * count
    weights[0] = 0.4
    weights[-1] = 0.4
    return weights

"""
PathCredit Attribution - multi-touch attribution and channel rollups.

Provides:
- Event, channel and result schema
- A pure attribution calculator with five models
  (first_touch, last_touch, linear, time_decay, u_shaped)
- A channel performance aggregator for channel, path, ROI and
  model-comparison rollups
- A narrow read-only repository interface with an in-memory implementation

Usage:
    from pathcredit.attribution import (
        AttributionCalculationRequest,
        ChannelPerformanceAggregator,
        InMemoryAttributionRepository,
        calculate_attribution,
    )

    # Attribute one conversion
    result = calculate_attribution(AttributionCalculationRequest(
        project_id=7,
        user_identifier="visitor-123",
        conversion_event_id=99,
        model="u_shaped",
        touchpoints=events,
    ))

    # Roll up a date window
    aggregator = ChannelPerformanceAggregator(InMemoryAttributionRepository(events, channels))
    channels = aggregator.get_channel_performance(7, "linear", start, end)
"""

from pathcredit.attribution.aggregator import (
    AggregationDiagnostics,
    AttributedWindow,
    ChannelPerformanceAggregator,
    SkippedConversion,
    rollup_channel_performance,
    rollup_conversion_paths,
    rollup_roi_metrics,
    summarize_roi,
)
from pathcredit.attribution.calculator import (
    TIME_DECAY_HALF_LIFE_HOURS,
    calculate_attribution,
    calculate_weights,
)
from pathcredit.attribution.config import AggregatorConfig
from pathcredit.attribution.exceptions import (
    AttributionError,
    DataUnavailableError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
)
from pathcredit.attribution.repository import (
    AttributionRepository,
    InMemoryAttributionRepository,
)
from pathcredit.attribution.schema import (
    UNKNOWN_CHANNEL_NAME,
    AttributionCalculationRequest,
    AttributionChannel,
    AttributionEvent,
    AttributionModel,
    AttributionResult,
    AttributionTouchpoint,
    ChannelCategory,
    ChannelPerformance,
    ConversionPath,
    EventType,
    ModelTotals,
    ROIMetrics,
    ROISummary,
)

__all__ = [
    # Schema
    "AttributionEvent",
    "AttributionChannel",
    "AttributionCalculationRequest",
    "AttributionTouchpoint",
    "AttributionResult",
    "AttributionModel",
    "EventType",
    "ChannelCategory",
    "ChannelPerformance",
    "ConversionPath",
    "ROIMetrics",
    "ROISummary",
    "ModelTotals",
    "UNKNOWN_CHANNEL_NAME",
    # Calculator
    "calculate_attribution",
    "calculate_weights",
    "TIME_DECAY_HALF_LIFE_HOURS",
    # Aggregator
    "ChannelPerformanceAggregator",
    "AggregatorConfig",
    "AttributedWindow",
    "AggregationDiagnostics",
    "SkippedConversion",
    "rollup_channel_performance",
    "rollup_conversion_paths",
    "rollup_roi_metrics",
    "summarize_roi",
    # Repository
    "AttributionRepository",
    "InMemoryAttributionRepository",
    # Errors
    "AttributionError",
    "NotFoundError",
    "InvalidArgumentError",
    "DataUnavailableError",
    "InternalError",
]

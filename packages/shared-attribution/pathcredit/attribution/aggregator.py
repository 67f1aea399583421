"""
Channel performance aggregator - roll attributed touchpoints into reports.

Provides:
- Channel performance (revenue, conversions, conversion rate, timing)
- Top conversion paths (exact ordered channel sequences)
- ROI / ROAS per channel from caller-supplied spend
- Side-by-side comparison of all attribution models

Each query loads the window's journeys once, runs the calculator per
journey (optionally on a thread pool) and reduces the results with plain
sums, so the output does not depend on worker scheduling.

Usage:
    aggregator = ChannelPerformanceAggregator(repository)
    channels = aggregator.get_channel_performance(7, "linear", start, end)
    paths = aggregator.get_top_conversion_paths(7, "linear", start, end, limit=5)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from pathcredit.attribution.calculator import calculate_attribution
from pathcredit.attribution.config import AggregatorConfig
from pathcredit.attribution.exceptions import (
    AttributionError,
    InternalError,
    InvalidArgumentError,
)
from pathcredit.attribution.repository import AttributionRepository
from pathcredit.attribution.schema import (
    AttributionCalculationRequest,
    AttributionEvent,
    AttributionModel,
    AttributionResult,
    ChannelCategory,
    ChannelPerformance,
    ConversionPath,
    ModelTotals,
    ROIMetrics,
    ROISummary,
    as_utc,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class ChannelLabel:
    """Display labels for a channel; channel_id is None for the unknown bucket."""

    channel_id: Any | None
    name: str
    category: str


@dataclass
class Journey:
    """A conversion and the user's events up to and including it."""

    conversion: AttributionEvent
    touchpoints: list[AttributionEvent]


@dataclass
class SkippedConversion:
    """A conversion left out of a rollup, with the reason."""

    conversion_event_id: Any
    user_identifier: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversion_event_id": self.conversion_event_id,
            "user_identifier": self.user_identifier,
            "reason": self.reason,
        }


@dataclass
class AggregationDiagnostics:
    """Counts of records the rollup recovered from or skipped."""

    conversions_seen: int = 0
    conversions_attributed: int = 0
    unresolved_touchpoints: int = 0
    skipped_rows: int = 0
    skipped: list[SkippedConversion] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversions_seen": self.conversions_seen,
            "conversions_attributed": self.conversions_attributed,
            "unresolved_touchpoints": self.unresolved_touchpoints,
            "skipped_rows": self.skipped_rows,
            "skipped":[s.to_dict() for s in self.skipped],
        }


@dataclass
class AttributedJourney:
    """A journey with its calculator result and per-touchpoint channel labels."""

    journey: Journey
    result: AttributionResult
    labels: list[ChannelLabel]

    @property
    def conversion_value(self) -> float:
        return self.result.total_attributed_value

    @property
    def path(self) -> tuple[str, ...]:
        return tuple(label.name for label in self.labels)

    @property
    def time_to_conversion_hours(self) -> float:
        """Hours from the first touchpoint to the conversion."""
        if not self.result.touchpoints:
            return 0.0
        return self.result.touchpoints[0].time_to_conversion_hours


class ChannelResolver:
    """Resolve channel ids to display labels, caching lookups.

    Null ids, unregistered ids and failed lookups all resolve to the
    unknown channel so their value stays in the rollup.
    """

    def __init__(
        self,
        repository: AttributionRepository,
        project_id: Any,
        unknown_name: str,
    ):
        self.repository = repository
        self.project_id = project_id
        self.unknown = ChannelLabel(None, unknown_name, ChannelCategory.OTHER.value)
        self._cache: dict[Any, ChannelLabel] = {}

    def resolve(self, channel_id: Any | None) -> ChannelLabel:
        if channel_id is None:
            return self.unknown
        if channel_id not in self._cache:
            self._cache[channel_id] = self._lookup(channel_id)
        return self._cache[channel_id]

    def _lookup(self, channel_id: Any) -> ChannelLabel:
        try:
            channel = self.repository.fetch_channel(self.project_id, channel_id)
        except AttributionError as e:
            logger.warning(f"Channel {channel_id} unavailable, using {self.unknown.name}: {e}")
            return self.unknown

        if channel is None:
            logger.warning(f"Channel {channel_id} not registered, using {self.unknown.name}")
            return self.unknown

        return ChannelLabel(channel.id, channel.name, channel.category.value)


@dataclass
class WindowData:
    """Raw inputs for one project window, fetched once and reusable across models."""

    project_id: Any
    start: datetime
    end: datetime
    journeys: list[Journey]
    events: list[AttributionEvent]
    skipped: list[SkippedConversion]
    resolver: ChannelResolver
    skipped_rows: int = 0


@dataclass
class AttributedWindow:
    """Calculator output for every journey in a window under one model."""

    project_id: Any
    model: AttributionModel
    start: datetime
    end: datetime
    journeys: list[AttributedJourney]
    channel_sessions: dict[Any, set[str]]
    channel_labels: dict[Any, ChannelLabel]
    diagnostics: AggregationDiagnostics

    @property
    def total_conversions(self) -> int:
        return len(self.journeys)

    @property
    def total_revenue(self) -> float:
        return sum(j.conversion_value for j in self.journeys)

    @property
    def avg_time_to_conversion(self) -> float:
        if not self.journeys:
            return 0.0
        return sum(j.time_to_conversion_hours for j in self.journeys) / len(self.journeys)

    @property
    def avg_touchpoints(self) -> float:
        if not self.journeys:
            return 0.0
        return sum(len(j.result.touchpoints) for j in self.journeys) / len(self.journeys)


class ChannelPerformanceAggregator:
    """
    Aggregate attribution results by channel over a date window.

    The aggregator is a pure read stage: it fetches through the injected
    repository and returns plain dataclasses. Persisting reports is the
    report builder's job.

    Example:
        aggregator = ChannelPerformanceAggregator(
            InMemoryAttributionRepository(events, channels),
            config=AggregatorConfig(max_workers=4),
        )
        roi = aggregator.calculate_roi_metrics(7, "u_shaped", start, end, {3: 250.0})
    """

    def __init__(
        self,
        repository: AttributionRepository,
        config: AggregatorConfig | None = None,
    ):
        self.repository = repository
        self.config = config or AggregatorConfig()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_channel_performance(
        self,
        project_id: Any,
        model: AttributionModel | str,
        start: datetime,
        end: datetime,
    ) -> list[ChannelPerformance]:
        """
        Get channel performance metrics for a date range.

        Args:
            project_id: Project identifier
            model: Attribution model
            start: Window start (inclusive)
            end: Window end (inclusive)

        Returns:
            ChannelPerformance rows sorted by revenue, highest first
        """
        window = self.attribute_window(project_id, model, start, end)
        return rollup_channel_performance(window)

    def get_top_conversion_paths(
        self,
        project_id: Any,
        model: AttributionModel | str,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[ConversionPath]:
        """
        Get the most valuable exact channel sequences that led to conversion.

        Args:
            limit: Maximum paths to return (default: config.path_limit)

        Raises:
            InvalidArgumentError: If limit is negative.
        """
        window = self.attribute_window(project_id, model, start, end)
        return rollup_conversion_paths(
            window,
            limit=self.config.path_limit if limit is None else limit,
            separator=self.config.path_separator,
        )

    def calculate_roi_metrics(
        self,
        project_id: Any,
        model: AttributionModel | str,
        start: datetime,
        end: datetime,
        channel_spend: Mapping[Any, float] | None = None,
    ) -> list[ROIMetrics]:
        """
        Calculate ROI metrics by channel.

        Args:
            channel_spend: Optional channel_id -> spend. Channels without
                positive spend get undefined (None) ROI and ROAS.
        """
        data = self.load_window(project_id, start, end)
        window = self.attribute_window(project_id, model, start, end, data=data)
        return rollup_roi_metrics(
            rollup_channel_performance(window),
            channel_spend,
            resolve=data.resolver.resolve,
        )

    def compare_attribution_models(
        self,
        project_id: Any,
        channel_id: Any | None,
        start: datetime,
        end: datetime,
    ) -> dict[str, ModelTotals]:
        """
        Compare a channel's totals across every attribution model.

        Events are fetched once and the same journeys are re-attributed
        under each model, so differences come from the model alone.

        Returns:
            Mapping of model identifier to ModelTotals
        """
        data = self.load_window(project_id, start, end)

        comparison = {}
        for model in AttributionModel:
            window = self.attribute_window(project_id, model, start, end, data=data)
            comparison[model.value] = channel_model_totals(window, channel_id)
        return comparison

    async def get_channel_performance_async(self, *args: Any, **kwargs: Any) -> list[ChannelPerformance]:
        """Async wrapper for get_channel_performance."""
        return await asyncio.to_thread(self.get_channel_performance, *args, **kwargs)

    async def get_top_conversion_paths_async(self, *args: Any, **kwargs: Any) -> list[ConversionPath]:
        """Async wrapper for get_top_conversion_paths."""
        return await asyncio.to_thread(self.get_top_conversion_paths, *args, **kwargs)

    async def calculate_roi_metrics_async(self, *args: Any, **kwargs: Any) -> list[ROIMetrics]:
        """Async wrapper for calculate_roi_metrics."""
        return await asyncio.to_thread(self.calculate_roi_metrics, *args, **kwargs)

    async def compare_attribution_models_async(self, *args: Any, **kwargs: Any) -> dict[str, ModelTotals]:
        """Async wrapper for compare_attribution_models."""
        return await asyncio.to_thread(self.compare_attribution_models, *args, **kwargs)

    # ------------------------------------------------------------------
    # Window assembly
    # ------------------------------------------------------------------

    def load_window(self, project_id: Any, start: datetime, end: datetime) -> WindowData:
        """
        Fetch the conversions in a window and each converting user's journey.

        A user's history is fetched once per call even if they converted
        several times. A conversion whose history cannot be fetched is
        skipped and recorded. Unreadable rows in the window are counted in
        skipped_rows.
        """
        validate_date_range(start, end)

        conversions = self.repository.fetch_conversion_events(project_id, start, end)
        rows_before = self.repository.skipped_rows
        events = self.repository.fetch_events(project_id, start, end)
        skipped_rows = self.repository.skipped_rows - rows_before

        histories: dict[str, list[AttributionEvent]] = {}
        journeys = []
        skipped = []

        for conversion in conversions:
            user = conversion.user_identifier
            if user not in histories:
                try:
                    histories[user] = self.repository.fetch_user_events(project_id, user)
                except InternalError:
                    raise
                except AttributionError as e:
                    logger.warning(f"Skipping conversion {conversion.id}: {e}")
                    skipped.append(SkippedConversion(conversion.id, user, str(e)))
                    continue

            converted_at = as_utc(conversion.event_timestamp)
            touchpoints = [
                e for e in histories[user]
                if as_utc(e.event_timestamp) <= converted_at
            ]
            journeys.append(Journey(conversion=conversion, touchpoints=touchpoints))

        logger.debug(
            f"Loaded {len(journeys)} journeys and {len(events)} events for project {project_id}"
        )

        return WindowData(
            project_id=project_id,
            start=start,
            end=end,
            journeys=journeys,
            events=events,
            skipped=skipped,
            resolver=ChannelResolver(self.repository, project_id, self.config.unknown_channel_name),
            skipped_rows=skipped_rows,
        )

    def attribute_window(
        self,
        project_id: Any,
        model: AttributionModel | str,
        start: datetime,
        end: datetime,
        data: WindowData | None = None,
    ) -> AttributedWindow:
        """
        Run the calculator over every journey in a window.

        Args:
            data: Previously loaded window data to reuse instead of fetching

        Raises:
            InvalidArgumentError: For an unknown model or start after end.
        """
        model = AttributionModel.parse(model)
        if data is None:
            data = self.load_window(project_id, start, end)

        diagnostics = AggregationDiagnostics(
            conversions_seen=len(data.journeys) + len(data.skipped),
            skipped_rows=data.skipped_rows,
            skipped=list(data.skipped),
        )

        outcomes = self._map(
            lambda journey: _calculate_journey(project_id, model, journey),
            data.journeys,
        )

        resolver = data.resolver
        channel_sessions: dict[Any, set[str]] = {}
        channel_labels: dict[Any, ChannelLabel] = {}
        attributed = []

        for journey, outcome in zip(data.journeys, outcomes):
            if isinstance(outcome, SkippedConversion):
                diagnostics.skipped.append(outcome)
                continue

            sessions = {e.id: e.session_key for e in journey.touchpoints}
            labels = []
            for tp in outcome.touchpoints:
                label = resolver.resolve(tp.channel_id)
                if label.channel_id is None:
                    diagnostics.unresolved_touchpoints += 1
                channel_labels.setdefault(label.channel_id, label)
                channel_sessions.setdefault(label.channel_id, set()).add(
                    sessions[tp.touchpoint_event_id]
                )
                labels.append(label)

            attributed.append(AttributedJourney(journey=journey, result=outcome, labels=labels))

        for event in data.events:
            label = resolver.resolve(event.channel_id)
            channel_labels.setdefault(label.channel_id, label)
            channel_sessions.setdefault(label.channel_id, set()).add(event.session_key)

        diagnostics.conversions_attributed = len(attributed)
        if diagnostics.skipped:
            logger.warning(
                f"Skipped {diagnostics.skipped_count} of {diagnostics.conversions_seen} "
                f"conversions for project {project_id}"
            )
        if diagnostics.skipped_rows:
            logger.warning(
                f"Skipped {diagnostics.skipped_rows} unreadable event rows for project {project_id}"
            )

        return AttributedWindow(
            project_id=project_id,
            model=model,
            start=start,
            end=end,
            journeys=attributed,
            channel_sessions=channel_sessions,
            channel_labels=channel_labels,
            diagnostics=diagnostics,
        )

    def _map(self, fn: Callable[[T], R], items: Sequence[T]) -> list[R]:
        """Apply fn to each item, on a thread pool when configured. Order is preserved."""
        if self.config.max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                return list(executor.map(fn, items))
        return [fn(item) for item in items]


def validate_date_range(start: datetime, end: datetime) -> None:
    """Raise InvalidArgumentError when start is after end."""
    if as_utc(start) > as_utc(end):
        raise InvalidArgumentError(
            f"Invalid date range: start {start.isoformat()} is after end {end.isoformat()}"
        )


def _calculate_journey(
    project_id: Any,
    model: AttributionModel,
    journey: Journey,
) -> AttributionResult | SkippedConversion:
    """Attribute one journey, turning recoverable failures into a skip record."""
    conversion = journey.conversion
    request = AttributionCalculationRequest(
        project_id=project_id,
        user_identifier=conversion.user_identifier,
        conversion_event_id=conversion.id,
        model=model,
        touchpoints=journey.touchpoints,
    )
    try:
        return calculate_attribution(request)
    except InternalError:
        raise
    except AttributionError as e:
        logger.warning(f"Skipping conversion {conversion.id}: {e}")
        return SkippedConversion(conversion.id, conversion.user_identifier, str(e))


# ----------------------------------------------------------------------
# Rollups
# ----------------------------------------------------------------------


@dataclass
class _ChannelTotals:
    touchpoints: int = 0
    revenue: float = 0.0
    weight: float = 0.0
    hours: float = 0.0
    conversion_ids: set[Any] = field(default_factory=set)


def rollup_channel_performance(window: AttributedWindow) -> list[ChannelPerformance]:
    """
    Group a window's attributed touchpoints by channel.

    conversion_rate is conversions touching the channel divided by the
    distinct sessions that touched it. Channels with traffic but no
    attributed conversions are reported with zero revenue.
    """
    totals: dict[Any, _ChannelTotals] = {key: _ChannelTotals() for key in window.channel_labels}

    for journey in window.journeys:
        for tp, label in zip(journey.result.touchpoints, journey.labels):
            channel = totals[label.channel_id]
            channel.touchpoints += 1
            channel.revenue += tp.attributed_value
            channel.weight += tp.weight
            channel.hours += tp.time_to_conversion_hours
            channel.conversion_ids.add(journey.result.conversion_event_id)

    performance = []
    for key, channel in totals.items():
        label = window.channel_labels[key]
        conversions = len(channel.conversion_ids)
        sessions = len(window.channel_sessions.get(key, ()))
        performance.append(ChannelPerformance(
            channel_id=label.channel_id,
            channel_name=label.name,
            channel_category=label.category,
            total_touchpoints=channel.touchpoints,
            total_conversions=conversions,
            attributed_conversions=channel.weight,
            total_revenue=channel.revenue,
            conversion_rate=conversions / sessions if sessions else 0.0,
            avg_time_to_conversion=channel.hours / channel.touchpoints if channel.touchpoints else 0.0,
            avg_touchpoints=channel.touchpoints / conversions if conversions else 0.0,
            sessions=sessions,
        ))

    performance.sort(key=lambda c: (-c.total_revenue, c.channel_name, str(c.channel_id)))
    return performance


def rollup_conversion_paths(
    window: AttributedWindow,
    limit: int = 10,
    separator: str = " → ",
) -> list[ConversionPath]:
    """
    Group journeys by their exact ordered channel sequence.

    Sorted by revenue, then conversions, then path string; truncated to limit.

    Raises:
        InvalidArgumentError: If limit is negative.
    """
    if limit < 0:
        raise InvalidArgumentError(f"Path limit must not be negative, got {limit}")

    grouped: dict[tuple[str, ...], list[AttributedJourney]] = {}
    for journey in window.journeys:
        grouped.setdefault(journey.path, []).append(journey)

    paths = []
    for path, journeys in grouped.items():
        count = len(journeys)
        paths.append(ConversionPath(
            path=path,
            path_string=separator.join(path),
            conversions=count,
            revenue=sum(j.conversion_value for j in journeys),
            avg_touchpoints=sum(len(j.result.touchpoints) for j in journeys) / count,
            avg_time_to_conversion=sum(j.time_to_conversion_hours for j in journeys) / count,
        ))

    paths.sort(key=lambda p: (-p.revenue, -p.conversions, p.path_string))
    return paths[:limit]


def rollup_roi_metrics(
    performance: Sequence[ChannelPerformance],
    channel_spend: Mapping[Any, float] | None = None,
    resolve: Callable[[Any], ChannelLabel] | None = None,
) -> list[ROIMetrics]:
    """
    Derive ROI rows from channel performance and optional spend.

    Args:
        performance: Channel performance rows
        channel_spend: channel_id -> spend
        resolve: Label lookup for channels that have spend but no revenue;
            without it such channels are not reported

    Returns:
        ROIMetrics rows sorted by revenue, highest first
    """
    spend = dict(channel_spend or {})
    metrics = [
        _roi_row(c.channel_id, c.channel_name, c.total_revenue, c.total_conversions, spend.get(c.channel_id))
        for c in performance
    ]

    if resolve is not None:
        reported = {c.channel_id for c in performance}
        for channel_id, amount in spend.items():
            if channel_id in reported:
                continue
            label = resolve(channel_id)
            metrics.append(_roi_row(channel_id, label.name, 0.0, 0, amount))

    metrics.sort(key=lambda m: (-m.total_revenue, m.channel_name, str(m.channel_id)))
    return metrics


def summarize_roi(metrics: Sequence[ROIMetrics]) -> ROISummary:
    """Portfolio ROI across rows; undefined when no row has spend."""
    total_revenue = sum(m.total_revenue for m in metrics)
    total_spend = sum(m.total_spend for m in metrics if m.has_spend_data)

    summary = ROISummary(total_revenue=total_revenue)
    if total_spend > 0:
        summary.total_spend = total_spend
        summary.overall_roi = (total_revenue - total_spend) / total_spend
        summary.overall_roas = total_revenue / total_spend
    return summary


def channel_model_totals(window: AttributedWindow, channel_id: Any | None) -> ModelTotals:
    """A single channel's conversions and revenue within an attributed window."""
    totals = ModelTotals()
    conversion_ids = set()

    for journey in window.journeys:
        for tp, label in zip(journey.result.touchpoints, journey.labels):
            if label.channel_id != channel_id:
                continue
            conversion_ids.add(journey.result.conversion_event_id)
            totals.attributed_conversions += tp.weight
            totals.revenue += tp.attributed_value

    totals.conversions = len(conversion_ids)
    return totals


def _roi_row(
    channel_id: Any,
    channel_name: str,
    revenue: float,
    conversions: int,
    spend: float | None,
) -> ROIMetrics:
    metrics = ROIMetrics(
        channel_id=channel_id,
        channel_name=channel_name,
        total_revenue=revenue,
        total_conversions=conversions,
        revenue_per_conversion=revenue / conversions if conversions else 0.0,
    )

    if spend is None or spend <= 0:
        if spend is not None and spend < 0:
            logger.warning(f"Ignoring negative spend {spend} for channel {channel_id}")
        return metrics

    metrics.total_spend = spend
    metrics.roi = (revenue - spend) / spend
    metrics.roas = revenue / spend
    metrics.cost_per_conversion = spend / conversions if conversions else None
    metrics.profit_margin = (revenue - spend) / revenue if revenue else None
    return metrics

"""
ReportBuilder - persist aggregator output as immutable report snapshots.

The builder does no attribution math of its own. It shapes channel,
path and ROI rows into an AttributionReport and hands it to a store.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from pathcredit.attribution.aggregator import (
    ChannelPerformanceAggregator,
    rollup_channel_performance,
    rollup_conversion_paths,
    rollup_roi_metrics,
    validate_date_range,
)
from pathcredit.attribution.exceptions import InvalidArgumentError
from pathcredit.attribution.schema import (
    AttributionModel,
    ChannelPerformance,
    ConversionPath,
    ROIMetrics,
)
from pathcredit.reporting.snapshot import (
    AttributionReport,
    ChannelBreakdown,
    ReportTotals,
    ReportType,
)
from pathcredit.reporting.storage import ReportStore

logger = logging.getLogger(__name__)


class ReportBuilder:
    """
    Build and store attribution report snapshots.

    Example:
        builder = ReportBuilder(InMemoryReportStore(), aggregator)
        report = builder.generate(
            project_id=7,
            report_name="Q1 channels",
            model="time_decay",
            start=datetime(2025, 1, 1, tzinfo=UTC),
            end=datetime(2025, 3, 31, 23, 59, 59, tzinfo=UTC),
        )
    """

    def __init__(
        self,
        store: ReportStore,
        aggregator: ChannelPerformanceAggregator | None = None,
        path_limit: int = 10,
    ):
        """
        Initialize report builder.

        Args:
            store: Where snapshots are persisted
            aggregator: Required only for generate()
            path_limit: Number of top paths kept in a generated report
        """
        self.store = store
        self.aggregator = aggregator
        self.path_limit = path_limit

    def create_snapshot(
        self,
        project_id: Any,
        report_name: str,
        model: AttributionModel | str,
        start: datetime,
        end: datetime,
        channel_performance: Sequence[ChannelPerformance],
        conversion_paths: Sequence[ConversionPath] = (),
        totals: ReportTotals | None = None,
        roi_metrics: Sequence[ROIMetrics] = (),
        report_type: ReportType = ReportType.CHANNEL_PERFORMANCE,
        skipped_conversions: int = 0,
        generated_by: Any | None = None,
    ) -> AttributionReport:
        """
        Persist aggregator output as a report snapshot.

        When totals are not given they are derived from the channel rows:
        revenue is summed, conversions are the largest per-channel count
        (a conversion touching two channels appears in both rows).

        Raises:
            InvalidArgumentError: For an unknown model, a blank report
                name or start after end.
            ReportExistsError: If a snapshot exists for the same key.
        """
        model = AttributionModel.parse(model)
        validate_date_range(start, end)
        if not report_name or not report_name.strip():
            raise InvalidArgumentError("Report name must not be empty")

        if totals is None:
            totals = _totals_from_channels(channel_performance)

        report = AttributionReport(
            project_id=project_id,
            report_name=report_name,
            attribution_model=model,
            date_range_start=start,
            date_range_end=end,
            totals=totals,
            report_type=report_type,
            channel_breakdown=tuple(
                ChannelBreakdown.from_performance(c, totals.total_revenue)
                for c in channel_performance
            ),
            top_paths=tuple(conversion_paths),
            roi=tuple(roi_metrics),
            skipped_conversions=skipped_conversions,
            generated_by=generated_by,
        )

        self.store.save(report)
        logger.info(
            f"Created {report.report_type.value} report '{report_name}' "
            f"for project {project_id} ({model.value})"
        )
        return report

    def generate(
        self,
        project_id: Any,
        report_name: str,
        model: AttributionModel | str,
        start: datetime,
        end: datetime,
        channel_spend: Mapping[Any, float] | None = None,
        generated_by: Any | None = None,
    ) -> AttributionReport:
        """
        Run the aggregator for a window and store the result.

        Journeys are loaded once and shared by the channel, path and ROI
        rollups. Supplying channel_spend produces an ROI report.

        Raises:
            RuntimeError: If the builder has no aggregator.
        """
        if self.aggregator is None:
            raise RuntimeError("ReportBuilder.generate requires an aggregator")

        model = AttributionModel.parse(model)
        data = self.aggregator.load_window(project_id, start, end)
        window = self.aggregator.attribute_window(project_id, model, start, end, data=data)

        channels = rollup_channel_performance(window)
        paths = rollup_conversion_paths(
            window,
            limit=self.path_limit,
            separator=self.aggregator.config.path_separator,
        )

        roi: list[ROIMetrics] = []
        report_type = ReportType.CHANNEL_PERFORMANCE
        if channel_spend is not None:
            roi = rollup_roi_metrics(channels, channel_spend, resolve=data.resolver.resolve)
            report_type = ReportType.ROI_REPORT

        return self.create_snapshot(
            project_id=project_id,
            report_name=report_name,
            model=model,
            start=start,
            end=end,
            channel_performance=channels,
            conversion_paths=paths,
            totals=ReportTotals.from_window(window, channels),
            roi_metrics=roi,
            report_type=report_type,
            skipped_conversions=window.diagnostics.skipped_count,
            generated_by=generated_by,
        )


def _totals_from_channels(channels: Sequence[ChannelPerformance]) -> ReportTotals:
    if not channels:
        return ReportTotals()

    return ReportTotals(
        total_conversions=max(c.total_conversions for c in channels),
        total_revenue=sum(c.total_revenue for c in channels),
        avg_conversion_rate=sum(c.conversion_rate for c in channels) / len(channels),
        avg_time_to_conversion_hours=(
            sum(c.avg_time_to_conversion for c in channels) / len(channels)
        ),
        avg_touchpoints_per_conversion=sum(c.avg_touchpoints for c in channels) / len(channels),
    )

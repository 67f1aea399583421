"""
Attribution report snapshots.

A snapshot freezes the channel breakdown, top paths and ROI rows for one
(project, report name, model, date range) key. Snapshots are never edited;
a new date range or model is a new report.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pathcredit.attribution.aggregator import AttributedWindow
from pathcredit.attribution.schema import (
    AttributionModel,
    ChannelPerformance,
    ConversionPath,
    ROIMetrics,
    parse_timestamp,
)


class ReportType(str, Enum):
    """Kind of attribution report."""

    CHANNEL_PERFORMANCE = "channel_performance"
    ROI_REPORT = "roi_report"


@dataclass(frozen=True)
class ReportKey:
    """Identity of a report snapshot."""

    project_id: Any
    report_name: str
    attribution_model: str
    date_range_start: datetime
    date_range_end: datetime


@dataclass(frozen=True)
class ReportTotals:
    """Headline numbers for a report."""

    total_conversions: int = 0
    total_revenue: float = 0.0
    avg_conversion_rate: float = 0.0
    avg_time_to_conversion_hours: float = 0.0
    avg_touchpoints_per_conversion: float = 0.0

    @classmethod
    def from_window(
        cls,
        window: AttributedWindow,
        channels: Sequence[ChannelPerformance],
    ) -> ReportTotals:
        """Totals for an attributed window and its channel rollup."""
        return cls(
            total_conversions=window.total_conversions,
            total_revenue=window.total_revenue,
            avg_conversion_rate=(
                sum(c.conversion_rate for c in channels) / len(channels) if channels else 0.0
            ),
            avg_time_to_conversion_hours=window.avg_time_to_conversion,
            avg_touchpoints_per_conversion=window.avg_touchpoints,
        )


@dataclass(frozen=True)
class ChannelBreakdown:
    """One channel's row in a report."""

    channel_id: Any | None
    channel_name: str
    channel_category: str
    conversions: int
    attributed_conversions: float
    revenue: float
    revenue_share: float  # fraction of report revenue, 0..1
    conversion_rate: float
    avg_time_to_conversion: float
    avg_touchpoints: float

    @classmethod
    def from_performance(cls, channel: ChannelPerformance, total_revenue: float) -> ChannelBreakdown:
        return cls(
            channel_id=channel.channel_id,
            channel_name=channel.channel_name,
            channel_category=channel.channel_category,
            conversions=channel.total_conversions,
            attributed_conversions=channel.attributed_conversions,
            revenue=channel.total_revenue,
            revenue_share=channel.total_revenue / total_revenue if total_revenue > 0 else 0.0,
            conversion_rate=channel.conversion_rate,
            avg_time_to_conversion=channel.avg_time_to_conversion,
            avg_touchpoints=channel.avg_touchpoints,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "channel_category": self.channel_category,
            "conversions": self.conversions,
            "attributed_conversions": self.attributed_conversions,
            "revenue": self.revenue,
            "revenue_share": self.revenue_share,
            "conversion_rate": self.conversion_rate,
            "avg_time_to_conversion": self.avg_time_to_conversion,
            "avg_touchpoints": self.avg_touchpoints,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChannelBreakdown:
        return cls(
            channel_id=data.get("channel_id"),
            channel_name=data["channel_name"],
            channel_category=data.get("channel_category", "other"),
            conversions=int(data.get("conversions", 0)),
            attributed_conversions=float(data.get("attributed_conversions", 0.0)),
            revenue=float(data.get("revenue", 0.0)),
            revenue_share=float(data.get("revenue_share", 0.0)),
            conversion_rate=float(data.get("conversion_rate", 0.0)),
            avg_time_to_conversion=float(data.get("avg_time_to_conversion", 0.0)),
            avg_touchpoints=float(data.get("avg_touchpoints", 0.0)),
        )


@dataclass(frozen=True)
class AttributionReport:
    """
    Immutable attribution report snapshot.

    Example:
        report = builder.generate(
            project_id=7,
            report_name="March channels",
            model="u_shaped",
            start=datetime(2025, 3, 1, tzinfo=UTC),
            end=datetime(2025, 3, 31, 23, 59, 59, tzinfo=UTC),
        )
        report.channel_breakdown[0].revenue_share
    """

    project_id: Any
    report_name: str
    attribution_model: AttributionModel
    date_range_start: datetime
    date_range_end: datetime
    totals: ReportTotals
    report_type: ReportType = ReportType.CHANNEL_PERFORMANCE
    channel_breakdown: tuple[ChannelBreakdown, ...] = ()
    top_paths: tuple[ConversionPath, ...] = ()
    roi: tuple[ROIMetrics, ...] = ()
    skipped_conversions: int = 0
    generated_by: Any | None = None
    report_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> ReportKey:
        return ReportKey(
            project_id=self.project_id,
            report_name=self.report_name,
            attribution_model=self.attribution_model.value,
            date_range_start=self.date_range_start,
            date_range_end=self.date_range_end,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        return {
            "report_id": self.report_id,
            "project_id": self.project_id,
            "report_name": self.report_name,
            "report_type": self.report_type.value,
            "attribution_model": self.attribution_model.value,
            "date_range_start": self.date_range_start.isoformat(),
            "date_range_end": self.date_range_end.isoformat(),
            "total_conversions": self.totals.total_conversions,
            "total_revenue": self.totals.total_revenue,
            "avg_conversion_rate": self.totals.avg_conversion_rate,
            "avg_time_to_conversion_hours": self.totals.avg_time_to_conversion_hours,
            "avg_touchpoints_per_conversion": self.totals.avg_touchpoints_per_conversion,
            "channel_breakdown": [c.to_dict() for c in self.channel_breakdown],
            "top_paths": [p.to_dict() for p in self.top_paths],
            "roi": [m.to_dict() for m in self.roi],
            "skipped_conversions": self.skipped_conversions,
            "generated_by": self.generated_by,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttributionReport:
        """Create an AttributionReport from a dictionary.

        Raises:
            ValueError: If a required field is missing or malformed.
        """
        for required in ("report_id", "project_id", "report_name", "attribution_model"):
            if data.get(required) is None:
                raise ValueError(f"Missing required field: {required}")

        return cls(
            report_id=data["report_id"],
            project_id=data["project_id"],
            report_name=data["report_name"],
            report_type=ReportType(data.get("report_type") or "channel_performance"),
            attribution_model=AttributionModel.parse(data["attribution_model"]),
            date_range_start=parse_timestamp(data.get("date_range_start"), "date_range_start"),
            date_range_end=parse_timestamp(data.get("date_range_end"), "date_range_end"),
            totals=ReportTotals(
                total_conversions=int(data.get("total_conversions") or 0),
                total_revenue=float(data.get("total_revenue") or 0.0),
                avg_conversion_rate=float(data.get("avg_conversion_rate") or 0.0),
                avg_time_to_conversion_hours=float(data.get("avg_time_to_conversion_hours") or 0.0),
                avg_touchpoints_per_conversion=float(data.get("avg_touchpoints_per_conversion") or 0.0),
            ),
            channel_breakdown=tuple(
                ChannelBreakdown.from_dict(c) for c in data.get("channel_breakdown") or []
            ),
            top_paths=tuple(ConversionPath.from_dict(p) for p in data.get("top_paths") or []),
            roi=tuple(ROIMetrics.from_dict(m) for m in data.get("roi") or []),
            skipped_conversions=int(data.get("skipped_conversions") or 0),
            generated_by=data.get("generated_by"),
            created_at=parse_timestamp(data.get("created_at"), "created_at"),
        )

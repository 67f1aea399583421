"""Tests for report snapshot types."""

from datetime import UTC, datetime

import pytest

from pathcredit.attribution.exceptions import InvalidArgumentError
from pathcredit.attribution.schema import AttributionModel, ChannelPerformance, ConversionPath, ROIMetrics
from pathcredit.reporting.snapshot import (
    AttributionReport,
    ChannelBreakdown,
    ReportKey,
    ReportTotals,
    ReportType,
)

START = datetime(2025, 3, 1, tzinfo=UTC)
END = datetime(2025, 3, 31, 23, 59, 59, tzinfo=UTC)


def _report(**kwargs):
    defaults = dict(
        project_id=7,
        report_name="March channels",
        attribution_model=AttributionModel.TIME_DECAY,
        date_range_start=START,
        date_range_end=END,
        totals=ReportTotals(total_conversions=3, total_revenue=90.0, avg_conversion_rate=0.3),
    )
    defaults.update(kwargs)
    return AttributionReport(**defaults)


class TestChannelBreakdown:
    """Test ChannelBreakdown."""

    def test_from_performance(self):
        channel = ChannelPerformance(
            channel_id=3, channel_name="Organic Search", channel_category="organic",
            total_touchpoints=5, total_conversions=2, attributed_conversions=1.25,
            total_revenue=30.0, conversion_rate=0.4, avg_time_to_conversion=6.0, avg_touchpoints=2.5,
        )

        row = ChannelBreakdown.from_performance(channel, total_revenue=120.0)

        assert row.channel_id == 3
        assert row.conversions == 2
        assert row.attributed_conversions == pytest.approx(1.25)
        assert row.revenue_share == pytest.approx(0.25)
        assert row.conversion_rate == pytest.approx(0.4)

    def test_share_with_zero_revenue(self):
        channel = ChannelPerformance(channel_id=4, channel_name="Facebook", channel_category="social")

        assert ChannelBreakdown.from_performance(channel, total_revenue=0.0).revenue_share == 0.0

    def test_dict_round_trip(self):
        row = ChannelBreakdown(None, "(unknown)", "other", 1, 0.5, 10.0, 0.1, 0.2, 3.0, 1.0)

        assert ChannelBreakdown.from_dict(row.to_dict()) == row


class TestAttributionReport:
    """Test AttributionReport."""

    def test_defaults(self):
        report = _report()

        assert report.report_type == ReportType.CHANNEL_PERFORMANCE
        assert report.channel_breakdown == ()
        assert report.skipped_conversions == 0
        assert report.created_at.tzinfo is not None
        assert len(report.report_id) == 36

    def test_unique_ids(self):
        assert _report().report_id != _report().report_id

    def test_frozen(self):
        report = _report()
        with pytest.raises(AttributeError):
            report.report_name = "April"

    def test_key(self):
        assert _report().key == ReportKey(7, "March channels", "time_decay", START, END)

    def test_to_dict(self):
        data = _report(top_paths=(ConversionPath(("Email",), "Email", 1, 90.0),)).to_dict()

        assert data["attribution_model"] == "time_decay"
        assert data["report_type"] == "channel_performance"
        assert data["total_revenue"] == 90.0
        assert data["date_range_start"] == "2025-03-01T00:00:00+00:00"
        assert data["top_paths"][0]["path"] == ["Email"]

    def test_from_dict_restores_report(self):
        original = _report(
            report_type=ReportType.ROI_REPORT,
            roi=(ROIMetrics(channel_id=1, channel_name="Google Ads", total_revenue=90.0),),
            generated_by="analyst@example.com",
        )

        restored = AttributionReport.from_dict(original.to_dict())

        assert restored.report_id == original.report_id
        assert restored.report_type == ReportType.ROI_REPORT
        assert restored.attribution_model == AttributionModel.TIME_DECAY
        assert restored.totals == original.totals
        assert restored.roi[0].roi is None
        assert restored.created_at == original.created_at
        assert restored.key == original.key

    def test_from_dict_missing_field(self):
        data = _report().to_dict()
        del data["report_name"]

        with pytest.raises(ValueError, match="report_name"):
            AttributionReport.from_dict(data)

    def test_from_dict_unknown_model(self):
        data = _report().to_dict()
        data["attribution_model"] = "markov"

        with pytest.raises(InvalidArgumentError):
            AttributionReport.from_dict(data)

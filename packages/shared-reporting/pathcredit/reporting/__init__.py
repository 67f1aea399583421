"""
PathCredit Reporting - attribution report snapshots, storage and HTML output.

Usage:
    from pathcredit.reporting import InMemoryReportStore, ReportBuilder, HTMLRenderer

    builder = ReportBuilder(InMemoryReportStore(), aggregator)
    report = builder.generate(7, "March channels", "linear", start, end)
    html = HTMLRenderer().render_report(report)
"""

from pathcredit.reporting.builder import ReportBuilder
from pathcredit.reporting.html import HTMLRenderer
from pathcredit.reporting.snapshot import (
    AttributionReport,
    ChannelBreakdown,
    ReportKey,
    ReportTotals,
    ReportType,
)
from pathcredit.reporting.storage import (
    BigQueryReportStore,
    InMemoryReportStore,
    ReportExistsError,
    ReportStore,
)

__all__ = [
    "AttributionReport",
    "BigQueryReportStore",
    "ChannelBreakdown",
    "HTMLRenderer",
    "InMemoryReportStore",
    "ReportBuilder",
    "ReportExistsError",
    "ReportKey",
    "ReportStore",
    "ReportTotals",
    "ReportType",
]

"""Integration tests for package imports."""

from unittest.mock import MagicMock, Mock

import pytest


class TestAllPackagesImportable:
    """Test that all PathCredit packages can be imported together."""

    def test_attribution_package_imports(self):
        """Attribution package classes should be importable."""
        from pathcredit.attribution import ChannelPerformanceAggregator
        from pathcredit.attribution import InMemoryAttributionRepository
        from pathcredit.attribution import calculate_attribution

        assert ChannelPerformanceAggregator is not None
        assert InMemoryAttributionRepository is not None
        assert callable(calculate_attribution)

    def test_bigquery_package_imports(self):
        """BigQuery package classes should be importable."""
        from pathcredit.bigquery import BigQueryAttributionRepository
        from pathcredit.bigquery import BigQueryConfig

        assert BigQueryAttributionRepository is not None
        assert BigQueryConfig is not None

    def test_reporting_package_imports(self):
        """Reporting package classes should be importable."""
        from pathcredit.reporting import HTMLRenderer
        from pathcredit.reporting import InMemoryReportStore
        from pathcredit.reporting import ReportBuilder

        assert HTMLRenderer is not None
        assert InMemoryReportStore is not None
        assert ReportBuilder is not None


class TestCrossPackageIntegration:
    """Test that packages work together."""

    def test_bigquery_repository_is_attribution_repository(self):
        from pathcredit.attribution import AttributionRepository
        from pathcredit.bigquery import BigQueryAttributionRepository

        assert issubclass(BigQueryAttributionRepository, AttributionRepository)

    def test_events_to_html_report(self, sample_repository, march_window):
        """Events flow through attribution, aggregation, storage and rendering."""
        from pathcredit.attribution import ChannelPerformanceAggregator
        from pathcredit.reporting import HTMLRenderer, InMemoryReportStore, ReportBuilder

        store = InMemoryReportStore()
        builder = ReportBuilder(store, ChannelPerformanceAggregator(sample_repository))

        report = builder.generate(7, "March channels", "u_shaped", *march_window, channel_spend={1: 10.0})
        html = HTMLRenderer().render_report(store.get(report.report_id))

        assert report.totals.total_revenue == pytest.approx(150.0)
        assert "Google Ads" in html
        assert "Return on spend" in html

    def test_bigquery_events_feed_aggregator(self, make_event, sample_channels, march_window):
        """A BigQuery repository with a mocked client drives the aggregator."""
        from pathcredit.attribution import ChannelPerformanceAggregator, EventType
        from pathcredit.bigquery import BigQueryAttributionRepository, BigQueryConfig

        conversion = make_event(1, march_window[0], channel_id=1, event_type=EventType.CONVERSION, value=20.0)
        row = Mock()
        row.items.return_value = list(conversion.to_dict().items())
        channel_row = Mock()
        channel_row.items.return_value = list(sample_channels[0].to_dict().items())

        def query(sql, job_config=None):
            job = MagicMock()
            job.result.return_value = [channel_row] if "attribution_channels" in sql else [row]
            return job

        client = MagicMock()
        client.query.side_effect = query
        repo = BigQueryAttributionRepository(BigQueryConfig(project_id="acme-analytics"), client=client)

        rows = ChannelPerformanceAggregator(repo).get_channel_performance(7, "linear", *march_window)

        assert [r.channel_name for r in rows] == ["Google Ads"]
        assert rows[0].total_revenue == pytest.approx(20.0)

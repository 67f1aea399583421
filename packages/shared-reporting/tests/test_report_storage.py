"""Tests for report snapshot stores."""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, Mock, patch

import pytest

from pathcredit.attribution.schema import AttributionModel, ConversionPath, ROIMetrics
from pathcredit.bigquery.client import BigQueryConfig
from pathcredit.reporting.snapshot import (
    AttributionReport,
    ChannelBreakdown,
    ReportTotals,
    ReportType,
)
from pathcredit.reporting.storage import (
    CREATE_REPORTS_TABLE_SQL,
    BigQueryReportStore,
    InMemoryReportStore,
    ReportExistsError,
    ReportStore,
)

START = datetime(2025, 3, 1, tzinfo=UTC)
END = datetime(2025, 3, 31, 23, 59, 59, tzinfo=UTC)


def _report(name="March channels", model=AttributionModel.LINEAR, project_id=7, created_at=None, **kwargs):
    return AttributionReport(
        project_id=project_id,
        report_name=name,
        attribution_model=model,
        date_range_start=START,
        date_range_end=END,
        totals=ReportTotals(total_conversions=2, total_revenue=150.0),
        created_at=created_at or datetime(2025, 4, 1, tzinfo=UTC),
        **kwargs,
    )


class TestReportStore:
    """Test the store base class."""

    def test_is_abstract(self):
        with pytest.raises(TypeError):
            ReportStore()


class TestInMemoryReportStore:
    """Test InMemoryReportStore."""

    def test_save_and_get(self):
        store = InMemoryReportStore()
        report = _report()

        assert store.save(report) == report.report_id
        assert store.get(report.report_id) is report
        assert store.get_by_key(report.key) is report

    def test_get_missing(self):
        store = InMemoryReportStore()

        assert store.get("nope") is None
        assert store.get_by_key(_report().key) is None

    def test_duplicate_key_rejected(self):
        store = InMemoryReportStore()
        store.save(_report())

        with pytest.raises(ReportExistsError, match="already exists"):
            store.save(_report())

    def test_existing_snapshot_unchanged_after_rejection(self):
        store = InMemoryReportStore()
        original = _report()
        store.save(original)
        duplicate = _report(skipped_conversions=3)

        with pytest.raises(ReportExistsError):
            store.save(duplicate)

        assert store.get(duplicate.report_id) is None
        assert store.get_by_key(original.key) is original

    def test_list_newest_first(self):
        store = InMemoryReportStore()
        older = _report("Feb", created_at=datetime(2025, 3, 1, tzinfo=UTC))
        newer = _report("Mar", created_at=datetime(2025, 4, 1, tzinfo=UTC))
        other = _report("Other project", project_id=8)
        for report in (older, newer, other):
            store.save(report)

        assert [r.report_name for r in store.list_for_project(7)] == ["Mar", "Feb"]

    def test_delete(self):
        store = InMemoryReportStore()
        report = _report()
        store.save(report)

        assert store.delete(report.report_id) is True
        assert store.get(report.report_id) is None
        assert store.delete(report.report_id) is False

    def test_delete_frees_key(self):
        """After deletion the same key can be saved again."""
        store = InMemoryReportStore()
        store.save(_report())
        store.delete(store.list_for_project(7)[0].report_id)

        store.save(_report())

        assert len(store.list_for_project(7)) == 1

    def test_readers_take_lock(self):
        """get, get_by_key and list_for_project read under the store lock."""
        store = InMemoryReportStore()
        report = _report()
        store.save(report)
        store._lock = MagicMock()

        store.get(report.report_id)
        store.get_by_key(report.key)
        store.list_for_project(7)

        assert store._lock.__enter__.call_count == 3
        assert store._lock.__exit__.call_count == 3

    def test_concurrent_saves_and_listing(self):
        store = InMemoryReportStore()
        reports = [_report(f"Report {i}") for i in range(50)]

        with ThreadPoolExecutor(max_workers=8) as executor:
            saves = [executor.submit(store.save, r) for r in reports]
            listings = [executor.submit(store.list_for_project, 7) for _ in range(50)]

        assert all(f.exception() is None for f in saves + listings)
        assert len(store.list_for_project(7)) == 50


def _row(data):
    row = Mock()
    row.items.return_value = list(data.items())
    return row


def _stored_row(report):
    """A BigQuery row as returned for a stored report (JSON columns as strings)."""
    data = report.to_dict()
    data["project_id"] = str(report.project_id)
    data["date_range_start"] = report.date_range_start
    data["date_range_end"] = report.date_range_end
    data["created_at"] = report.created_at
    for column in ("channel_breakdown", "top_paths", "roi"):
        data[column] = json.dumps(data[column])
    return _row(data)


@pytest.fixture
def bq_client():
    client = MagicMock()
    client.rows = []
    client.insert_rows_json.return_value = []

    def query(sql, job_config=None):
        job = MagicMock()
        job.result.return_value = list(client.rows)
        return job

    client.query.side_effect = query
    return client


@pytest.fixture
def bq_store(bq_client):
    return BigQueryReportStore(BigQueryConfig(project_id="acme-analytics", dataset="marketing"), client=bq_client)


class TestBigQueryReportStore:
    """Test BigQueryReportStore with a mocked client."""

    def test_table_id(self, bq_store):
        assert bq_store.table_id == "acme-analytics.marketing.attribution_reports"

    @patch("google.cloud.bigquery.Client")
    def test_client_lazy_initialization(self, mock_bq_client):
        store = BigQueryReportStore(BigQueryConfig(project_id="acme-analytics"))

        assert store._client is None
        _ = store.client

        mock_bq_client.assert_called_once_with(project="acme-analytics")

    def test_ensure_table_exists(self, bq_store, bq_client):
        bq_store.ensure_table_exists()

        sql = bq_client.query.call_args.args[0]
        assert sql == CREATE_REPORTS_TABLE_SQL.format(table_id="acme-analytics.marketing.attribution_reports")
        assert "channel_breakdown JSON" in sql

    def test_save_inserts_row(self, bq_store, bq_client):
        report = _report(channel_breakdown=(
            ChannelBreakdown("g", "Google Ads", "paid", 2, 1.5, 150.0, 1.0, 0.5, 12.0, 2.0),
        ))

        assert bq_store.save(report) == report.report_id

        table_id, rows = bq_client.insert_rows_json.call_args.args
        assert table_id == "acme-analytics.marketing.attribution_reports"
        row = rows[0]
        assert row["project_id"] == "7"
        assert row["attribution_model"] == "linear"
        assert json.loads(row["channel_breakdown"])[0]["channel_name"] == "Google Ads"
        assert json.loads(row["top_paths"]) == []

    def test_save_duplicate(self, bq_store, bq_client):
        existing = _report()
        bq_client.rows = [_stored_row(existing)]

        with pytest.raises(ReportExistsError):
            bq_store.save(_report())

        bq_client.insert_rows_json.assert_not_called()

    def test_save_insert_errors(self, bq_store, bq_client):
        bq_client.insert_rows_json.return_value = [{"index": 0, "errors": ["bad row"]}]

        with pytest.raises(RuntimeError, match="Failed to insert report"):
            bq_store.save(_report())

    def test_get_parses_json_columns(self, bq_store, bq_client):
        report = _report(
            report_type=ReportType.ROI_REPORT,
            top_paths=(ConversionPath(("Email",), "Email", 2, 80.0, 1.0, 3.0),),
            roi=(ROIMetrics(channel_id=2, channel_name="Email", total_revenue=80.0, total_spend=40.0, roi=1.0),),
        )
        bq_client.rows = [_stored_row(report)]

        loaded = bq_store.get(report.report_id)

        assert loaded.report_id == report.report_id
        assert loaded.report_type == ReportType.ROI_REPORT
        assert loaded.top_paths[0].path == ("Email",)
        assert loaded.roi[0].roi == pytest.approx(1.0)
        assert loaded.totals.total_revenue == pytest.approx(150.0)
        assert loaded.date_range_end == END

    def test_get_missing(self, bq_store):
        assert bq_store.get("missing") is None

    def test_get_by_key_parameters(self, bq_store, bq_client):
        bq_store.get_by_key(_report().key)

        job_config = bq_client.query.call_args.kwargs["job_config"]
        params = {p.name: p.value for p in job_config.query_parameters}
        assert params == {
            "project_id": "7",
            "report_name": "March channels",
            "attribution_model": "linear",
            "date_range_start": START,
            "date_range_end": END,
        }

    def test_list_for_project(self, bq_store, bq_client):
        newer = _report("Mar")
        older = _report("Feb", created_at=datetime(2025, 4, 1, tzinfo=UTC) - timedelta(days=30))
        bq_client.rows = [_stored_row(newer), _stored_row(older)]

        reports = bq_store.list_for_project(7)

        assert [r.report_name for r in reports] == ["Mar", "Feb"]
        assert "ORDER BY created_at DESC" in bq_client.query.call_args.args[0]

    def test_null_json_columns(self, bq_store, bq_client):
        data = _report().to_dict()
        data.update(channel_breakdown=None, top_paths=None, roi=None)
        bq_client.rows = [_row(data)]

        loaded = bq_store.get(data["report_id"])

        assert loaded.channel_breakdown == ()
        assert loaded.roi == ()

    def test_delete(self, bq_store, bq_client):
        job = MagicMock()
        job.result.return_value.num_dml_affected_rows = 1
        bq_client.query.side_effect = None
        bq_client.query.return_value = job

        assert bq_store.delete("abc") is True
        assert "DELETE FROM" in bq_client.query.call_args.args[0]

    def test_delete_missing(self, bq_store, bq_client):
        job = MagicMock()
        job.result.return_value.num_dml_affected_rows = 0
        bq_client.query.side_effect = None
        bq_client.query.return_value = job

        assert bq_store.delete("abc") is False

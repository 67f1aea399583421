"""Report snapshot storage.

Snapshots are write-once: saving a second report under an existing
(project, name, model, date range) key raises ReportExistsError.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from pathcredit.attribution.exceptions import AttributionError
from pathcredit.bigquery.client import BigQueryConfig, build_job_config
from pathcredit.reporting.snapshot import AttributionReport, ReportKey

if TYPE_CHECKING:
    from google.cloud import bigquery

logger = logging.getLogger(__name__)


class ReportExistsError(AttributionError):
    """Raised when a snapshot already exists for a report key."""

    pass


class ReportStore(ABC):
    """Base class for report snapshot stores."""

    @abstractmethod
    def save(self, report: AttributionReport) -> str:
        """
        Persist a report snapshot.

        Returns:
            The report_id of the saved snapshot.

        Raises:
            ReportExistsError: If a snapshot exists for the report's key.
        """
        pass

    @abstractmethod
    def get(self, report_id: str) -> AttributionReport | None:
        """Get a report by ID, or None if not found."""
        pass

    @abstractmethod
    def get_by_key(self, key: ReportKey) -> AttributionReport | None:
        """Get the report stored under a key, or None if not found."""
        pass

    @abstractmethod
    def list_for_project(self, project_id: Any) -> list[AttributionReport]:
        """List a project's reports, newest first."""
        pass

    @abstractmethod
    def delete(self, report_id: str) -> bool:
        """Delete a report. Returns True if deleted, False if not found."""
        pass


class InMemoryReportStore(ReportStore):
    """Thread-safe in-memory report store."""

    def __init__(self):
        self._reports: dict[str, AttributionReport] = {}
        self._keys: dict[ReportKey, str] = {}
        self._lock = threading.Lock()

    def save(self, report: AttributionReport) -> str:
        with self._lock:
            if report.key in self._keys:
                raise ReportExistsError(
                    f"Report '{report.report_name}' already exists for this model and date range"
                )
            self._reports[report.report_id] = report
            self._keys[report.key] = report.report_id
        logger.info(f"Saved report snapshot: {report.report_id}")
        return report.report_id

    def get(self, report_id: str) -> AttributionReport | None:
        with self._lock:
            return self._reports.get(report_id)

    def get_by_key(self, key: ReportKey) -> AttributionReport | None:
        with self._lock:
            report_id = self._keys.get(key)
            return self._reports.get(report_id) if report_id else None

    def list_for_project(self, project_id: Any) -> list[AttributionReport]:
        with self._lock:
            reports = [r for r in self._reports.values() if r.project_id == project_id]
        return sorted(reports, key=lambda r: r.created_at, reverse=True)

    def delete(self, report_id: str) -> bool:
        with self._lock:
            report = self._reports.pop(report_id, None)
            if report is None:
                return False
            self._keys.pop(report.key, None)
        logger.info(f"Deleted report snapshot: {report_id}")
        return True


# SQL for creating the reports table
CREATE_REPORTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS `{table_id}` (
    report_id STRING NOT NULL,
    project_id STRING NOT NULL,
    report_name STRING NOT NULL,
    report_type STRING NOT NULL,
    attribution_model STRING NOT NULL,
    date_range_start TIMESTAMP NOT NULL,
    date_range_end TIMESTAMP NOT NULL,
    total_conversions INT64,
    total_revenue FLOAT64,
    avg_conversion_rate FLOAT64,
    avg_time_to_conversion_hours FLOAT64,
    avg_touchpoints_per_conversion FLOAT64,
    channel_breakdown JSON,
    top_paths JSON,
    roi JSON,
    skipped_conversions INT64,
    generated_by STRING,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP()
)
"""


class BigQueryReportStore(ReportStore):
    """Report snapshots stored in BigQuery.

    Breakdown, path and ROI rows are stored as JSON columns.

    Example:
        >>> store = BigQueryReportStore(BigQueryConfig(project_id="acme-analytics"))
        >>> store.ensure_table_exists()
        >>> report_id = store.save(report)
        >>> loaded = store.get(report_id)
    """

    REPORTS_TABLE = "attribution_reports"

    def __init__(
        self,
        config: BigQueryConfig | None = None,
        client: bigquery.Client | None = None,
    ):
        """Initialize report storage.

        Args:
            config: BigQuery configuration (default: from environment)
            client: Optional BigQuery client. Will be created if not provided.
        """
        self.config = config or BigQueryConfig.from_env()
        self._client = client

    @property
    def client(self) -> bigquery.Client:
        """Lazy-initialize BigQuery client."""
        if self._client is None:
            from google.cloud import bigquery

            self._client = bigquery.Client(project=self.config.project_id)
        return self._client

    @property
    def table_id(self) -> str:
        """Full table ID for the reports table."""
        return self.config.table_id(self.REPORTS_TABLE)

    def ensure_table_exists(self) -> None:
        """Create the reports table if it doesn't exist."""
        sql = CREATE_REPORTS_TABLE_SQL.format(table_id=self.table_id)
        self.client.query(sql).result()
        logger.info(f"Ensured reports table exists: {self.table_id}")

    def save(self, report: AttributionReport) -> str:
        if self.get_by_key(report.key) is not None:
            raise ReportExistsError(
                f"Report '{report.report_name}' already exists for this model and date range"
            )

        data = report.to_dict()
        row = {
            **data,
            "project_id": str(report.project_id),
            "generated_by": str(report.generated_by) if report.generated_by is not None else None,
            "channel_breakdown": json.dumps(data["channel_breakdown"]),
            "top_paths": json.dumps(data["top_paths"]),
            "roi": json.dumps(data["roi"]),
        }

        errors = self.client.insert_rows_json(self.table_id, [row])
        if errors:
            raise RuntimeError(f"Failed to insert report: {errors}")

        logger.info(f"Saved report snapshot: {report.report_id}")
        return report.report_id

    def get(self, report_id: str) -> AttributionReport | None:
        sql = f"""
        SELECT *
        FROM `{self.table_id}`
        WHERE report_id = @report_id
        """
        rows = self._query(sql, {"report_id": report_id})
        return self._row_to_report(rows[0]) if rows else None

    def get_by_key(self, key: ReportKey) -> AttributionReport | None:
        sql = f"""
        SELECT *
        FROM `{self.table_id}`
        WHERE project_id = @project_id
          AND report_name = @report_name
          AND attribution_model = @attribution_model
          AND date_range_start = @date_range_start
          AND date_range_end = @date_range_end
        LIMIT 1
        """
        rows = self._query(sql, {
            "project_id": str(key.project_id),
            "report_name": key.report_name,
            "attribution_model": key.attribution_model,
            "date_range_start": key.date_range_start,
            "date_range_end": key.date_range_end,
        })
        return self._row_to_report(rows[0]) if rows else None

    def list_for_project(self, project_id: Any) -> list[AttributionReport]:
        sql = f"""
        SELECT *
        FROM `{self.table_id}`
        WHERE project_id = @project_id
        ORDER BY created_at DESC
        """
        rows = self._query(sql, {"project_id": str(project_id)})
        return [self._row_to_report(row) for row in rows]

    def delete(self, report_id: str) -> bool:
        sql = f"""
        DELETE FROM `{self.table_id}`
        WHERE report_id = @report_id
        """
        result = self.client.query(sql, job_config=build_job_config({"report_id": report_id})).result()
        deleted = (result.num_dml_affected_rows or 0) > 0
        if deleted:
            logger.info(f"Deleted report snapshot: {report_id}")
        return deleted

    def _query(self, sql: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        result = self.client.query(sql, job_config=build_job_config(params)).result()
        return [dict(row.items()) for row in result]

    def _row_to_report(self, row: dict[str, Any]) -> AttributionReport:
        """Convert a BigQuery row to AttributionReport, parsing JSON columns."""
        data = dict(row)
        for column in ("channel_breakdown", "top_paths", "roi"):
            value = data.get(column)
            if isinstance(value, str):
                data[column] = json.loads(value)
            elif value is None:
                data[column] = []
        return AttributionReport.from_dict(data)

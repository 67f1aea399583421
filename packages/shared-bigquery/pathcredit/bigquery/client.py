"""
BigQuery configuration and query helpers shared by the event repository
and the report store.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any

from google.cloud import bigquery
from pydantic import BaseModel


class BigQueryConfig(BaseModel):
    """Configuration for BigQuery access."""

    project_id: str | None = None
    credentials_path: str | None = None
    dataset: str = "pathcredit"
    location: str = "US"
    max_results: int = 100_000
    timeout: int = 300  # 5 minutes

    @classmethod
    def from_env(cls) -> BigQueryConfig:
        """Load configuration from environment variables."""
        return cls(
            project_id=os.getenv("GCP_PROJECT_ID") or os.getenv("PATHCREDIT_PROJECT_ID"),
            credentials_path=os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
            dataset=os.getenv("PATHCREDIT_BQ_DATASET", "pathcredit"),
            location=os.getenv("PATHCREDIT_BQ_LOCATION", "US"),
        )

    def table_id(self, table: str) -> str:
        """Fully-qualified table ID in the configured dataset."""
        return f"{self.project_id}.{self.dataset}.{table}"


def infer_type(value: Any) -> str:
    """Infer BigQuery type from Python value."""
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, int):
        return "INT64"
    if isinstance(value, float):
        return "FLOAT64"
    if isinstance(value, datetime):
        return "TIMESTAMP"
    return "STRING"


def build_job_config(params: dict[str, Any] | None = None) -> bigquery.QueryJobConfig:
    """Build a parameterized query config, inferring parameter types."""
    job_config = bigquery.QueryJobConfig()
    if params:
        job_config.query_parameters = [
            bigquery.ScalarQueryParameter(name, infer_type(value), value)
            for name, value in params.items()
        ]
    return job_config

"""
PathCredit BigQuery - BigQuery-backed event source and channel registry.

Usage:
    from pathcredit.bigquery import BigQueryAttributionRepository, BigQueryConfig

    repo = BigQueryAttributionRepository(BigQueryConfig(project_id="acme-analytics"))
    events = repo.fetch_user_events(7, "visitor-123")
"""

from pathcredit.bigquery.client import BigQueryConfig, build_job_config, infer_type
from pathcredit.bigquery.repository import BigQueryAttributionRepository

__all__ = [
    "BigQueryConfig",
    "BigQueryAttributionRepository",
    "build_job_config",
    "infer_type",
]

"""
BigQueryAttributionRepository - event source and channel registry in BigQuery.

Reads from two tables in the configured dataset:
- attribution_events: one row per tracked event, channel already resolved
- attribution_channels: display labels per channel

Window rows that fail to parse are logged, skipped and counted in
skipped_rows so one corrupt record does not abort a rollup. A corrupt row in
a user history raises DataUnavailableError instead, since dropping a
touchpoint would shift its credit to the others.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any

from google.api_core.exceptions import GoogleAPIError
from google.cloud import bigquery

from pathcredit.attribution.exceptions import DataUnavailableError
from pathcredit.attribution.repository import AttributionRepository
from pathcredit.attribution.schema import AttributionChannel, AttributionEvent
from pathcredit.bigquery.client import BigQueryConfig, build_job_config

logger = logging.getLogger(__name__)

EVENT_COLUMNS = """
    id, project_id, user_identifier, session_id, event_type, event_name,
    event_value, channel_id, event_timestamp, created_at
"""


class BigQueryAttributionRepository(AttributionRepository):
    """
    Attribution repository backed by BigQuery.

    Example:
        repo = BigQueryAttributionRepository(BigQueryConfig(project_id="acme-analytics"))
        aggregator = ChannelPerformanceAggregator(repo)
    """

    EVENTS_TABLE = "attribution_events"
    CHANNELS_TABLE = "attribution_channels"

    def __init__(
        self,
        config: BigQueryConfig | None = None,
        client: bigquery.Client | None = None,
    ):
        """
        Initialize repository.

        Args:
            config: BigQuery configuration (default: from environment)
            client: Optional BigQuery client. Will be created if not provided.
        """
        self.config = config or BigQueryConfig.from_env()
        self._client = client
        self._channels: dict[tuple[Any, Any], AttributionChannel | None] = {}
        self._local = threading.local()

    @property
    def client(self) -> bigquery.Client:
        """Lazy initialization of BigQuery client."""
        if self._client is None:
            self._client = bigquery.Client(
                project=self.config.project_id,
                location=self.config.location,
            )
        return self._client

    @property
    def skipped_rows(self) -> int:
        """Malformed event rows skipped by queries on the calling thread."""
        return getattr(self._local, "skipped_rows", 0)

    @property
    def events_table(self) -> str:
        return self.config.table_id(self.EVENTS_TABLE)

    @property
    def channels_table(self) -> str:
        return self.config.table_id(self.CHANNELS_TABLE)

    def fetch_events(
        self,
        project_id: Any,
        start: datetime,
        end: datetime,
    ) -> list[AttributionEvent]:
        sql = f"""
            SELECT {EVENT_COLUMNS}
            FROM `{self.events_table}`
            WHERE project_id = @project_id
              AND event_timestamp BETWEEN @start AND @end
            ORDER BY event_timestamp, id
        """
        rows = self._query(sql, {"project_id": project_id, "start": start, "end": end})
        return self._rows_to_events(rows)

    def fetch_conversion_events(
        self,
        project_id: Any,
        start: datetime,
        end: datetime,
    ) -> list[AttributionEvent]:
        sql = f"""
            SELECT {EVENT_COLUMNS}
            FROM `{self.events_table}`
            WHERE project_id = @project_id
              AND event_type = 'conversion'
              AND event_timestamp BETWEEN @start AND @end
            ORDER BY event_timestamp, id
        """
        rows = self._query(sql, {"project_id": project_id, "start": start, "end": end})
        return self._rows_to_events(rows)

    def fetch_user_events(
        self,
        project_id: Any,
        user_identifier: str,
    ) -> list[AttributionEvent]:
        """
        Fetch a user's full event history.

        Raises:
            DataUnavailableError: If the query fails or a row cannot be parsed.
        """
        sql = f"""
            SELECT {EVENT_COLUMNS}
            FROM `{self.events_table}`
            WHERE project_id = @project_id
              AND user_identifier = @user_identifier
            ORDER BY event_timestamp, id
        """
        rows = self._query(sql, {"project_id": project_id, "user_identifier": user_identifier})
        return self._rows_to_events(rows, strict=True)

    def fetch_channel(self, project_id: Any, channel_id: Any) -> AttributionChannel | None:
        """
        Get a channel by ID, caching the answer for this repository.

        Raises:
            DataUnavailableError: If the query fails.
        """
        key = (project_id, channel_id)
        if key in self._channels:
            return self._channels[key]

        sql = f"""
            SELECT id, project_id, name, category, source, medium, campaign
            FROM `{self.channels_table}`
            WHERE project_id = @project_id
              AND id = @channel_id
            LIMIT 1
        """
        rows = self._query(sql, {"project_id": project_id, "channel_id": channel_id})

        channel = None
        if rows:
            try:
                channel = AttributionChannel.from_dict(rows[0])
            except ValueError as e:
                logger.warning(f"Malformed channel row {channel_id}: {e}")

        self._channels[key] = channel
        return channel

    def fetch_channels(self, project_id: Any) -> list[AttributionChannel]:
        """
        List a project's channels ordered by name, refreshing the lookup cache.

        Raises:
            DataUnavailableError: If the query fails.
        """
        sql = f"""
            SELECT id, project_id, name, category, source, medium, campaign
            FROM `{self.channels_table}`
            WHERE project_id = @project_id
            ORDER BY name
        """
        rows = self._query(sql, {"project_id": project_id})

        channels = []
        for row in rows:
            try:
                channel = AttributionChannel.from_dict(row)
            except ValueError as e:
                logger.warning(f"Malformed channel row {row.get('id')}: {e}")
                continue
            self._channels[(project_id, channel.id)] = channel
            channels.append(channel)
        return channels

    def clear_cache(self) -> None:
        """Forget cached channel lookups."""
        self._channels.clear()

    def _query(self, sql: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        """Run a parameterized query, surfacing API failures as DataUnavailableError."""
        try:
            query_job = self.client.query(sql, job_config=build_job_config(params))
            result = query_job.result(
                max_results=self.config.max_results,
                timeout=self.config.timeout,
            )
        except GoogleAPIError as e:
            raise DataUnavailableError(f"BigQuery query failed: {e}") from e

        return [dict(row.items()) for row in result]

    def _rows_to_events(
        self,
        rows: list[dict[str, Any]],
        strict: bool = False,
    ) -> list[AttributionEvent]:
        events = []
        for row in rows:
            try:
                events.append(AttributionEvent.from_dict(row))
            except ValueError as e:
                if strict:
                    raise DataUnavailableError(f"Malformed event row {row.get('id')}: {e}") from e
                logger.warning(f"Skipping malformed event row {row.get('id')}: {e}")
                self._local.skipped_rows = self.skipped_rows + 1
        return events

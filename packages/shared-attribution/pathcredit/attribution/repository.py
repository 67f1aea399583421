"""
Read-only data access for the aggregator.

The aggregator only needs a handful of lookups, so storage technology stays behind
this interface. InMemoryAttributionRepository backs tests and small
datasets; pathcredit.bigquery provides the warehouse-backed version.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import pandas as pd

from pathcredit.attribution.schema import AttributionChannel, AttributionEvent, as_utc

logger = logging.getLogger(__name__)


class AttributionRepository(ABC):
    """Base class for event sources and channel registries."""

    @abstractmethod
    def fetch_events(
        self,
        project_id: Any,
        start: datetime,
        end: datetime,
    ) -> list[AttributionEvent]:
        """
        Fetch every event recorded in a date window.

        Args:
            project_id: Project identifier
            start: Window start (inclusive)
            end: Window end (inclusive)

        Returns:
            List of events in the window
        """
        pass

    @abstractmethod
    def fetch_user_events(
        self,
        project_id: Any,
        user_identifier: str,
    ) -> list[AttributionEvent]:
        """Fetch a user's full event history."""
        pass

    @abstractmethod
    def fetch_channel(self, project_id: Any, channel_id: Any) -> AttributionChannel | None:
        """
        Look up display labels for a channel.

        Returns:
            The channel, or None if it is not registered.

        Raises:
            DataUnavailableError: If the registry cannot be reached.
        """
        pass

    @abstractmethod
    def fetch_channels(self, project_id: Any) -> list[AttributionChannel]:
        """
        List a project's registered channels, ordered by name.

        Raises:
            DataUnavailableError: If the registry cannot be reached.
        """
        pass

    @property
    def skipped_rows(self) -> int:
        """Stored event rows skipped as unreadable; 0 for sources that never skip."""
        return 0

    def fetch_conversion_events(
        self,
        project_id: Any,
        start: datetime,
        end: datetime,
    ) -> list[AttributionEvent]:
        """Fetch conversion events in a date window."""
        return [e for e in self.fetch_events(project_id, start, end) if e.is_conversion]


class InMemoryAttributionRepository(AttributionRepository):
    """
    Repository over in-memory event and channel lists.

    Example:
        repo = InMemoryAttributionRepository.from_records(
            events=[{"id": 1, "project_id": 7, "user_identifier": "u1", ...}],
            channels=[{"id": 3, "project_id": 7, "name": "Google Ads", "category": "paid"}],
        )
    """

    def __init__(
        self,
        events: Iterable[AttributionEvent] = (),
        channels: Iterable[AttributionChannel] = (),
    ):
        self._events = list(events)
        self._channels = {(c.project_id, c.id): c for c in channels}

    @classmethod
    def from_records(
        cls,
        events: pd.DataFrame | list[dict[str, Any]],
        channels: pd.DataFrame | list[dict[str, Any]] | None = None,
    ) -> InMemoryAttributionRepository:
        """Build a repository from DataFrames or lists of dicts."""
        return cls(
            events=[AttributionEvent.from_dict(row) for row in _records(events)],
            channels=[AttributionChannel.from_dict(row) for row in _records(channels or [])],
        )

    def add_event(self, event: AttributionEvent) -> None:
        self._events.append(event)

    def add_channel(self, channel: AttributionChannel) -> None:
        self._channels[(channel.project_id, channel.id)] = channel

    def fetch_events(
        self,
        project_id: Any,
        start: datetime,
        end: datetime,
    ) -> list[AttributionEvent]:
        start, end = as_utc(start), as_utc(end)
        return [
            e for e in self._events
            if e.project_id == project_id and start <= as_utc(e.event_timestamp) <= end
        ]

    def fetch_user_events(
        self,
        project_id: Any,
        user_identifier: str,
    ) -> list[AttributionEvent]:
        return [
            e for e in self._events
            if e.project_id == project_id and e.user_identifier == user_identifier
        ]

    def fetch_channel(self, project_id: Any, channel_id: Any) -> AttributionChannel | None:
        return self._channels.get((project_id, channel_id))

    def fetch_channels(self, project_id: Any) -> list[AttributionChannel]:
        channels = [c for c in self._channels.values() if c.project_id == project_id]
        return sorted(channels, key=lambda c: (c.name, str(c.id)))


def _records(data: pd.DataFrame | list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert input to a list of dicts with missing values as None."""
    if isinstance(data, pd.DataFrame):
        df = data
    else:
        df = pd.DataFrame(data)
    if df.empty:
        return []
    df = df.astype(object).where(df.notna(), None)
    logger.debug(f"Loaded {len(df)} records")
    return [row.to_dict() for _, row in df.iterrows()]

"""Shared pytest fixtures for PathCredit packages."""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from pathcredit.attribution.repository import InMemoryAttributionRepository
from pathcredit.attribution.schema import (
    AttributionChannel,
    AttributionEvent,
    ChannelCategory,
    EventType,
)

PROJECT_ID = 7


@pytest.fixture
def mock_bigquery_client():
    """Mock google.cloud.bigquery.Client for testing."""
    with patch("google.cloud.bigquery.Client") as mock:
        client = MagicMock()
        mock.return_value = client
        yield client


@pytest.fixture
def make_event():
    """Factory for AttributionEvent with sensible defaults."""

    def _make_event(
        event_id,
        timestamp,
        channel_id=None,
        event_type=EventType.CLICK,
        value=0.0,
        user="visitor-1",
        session_id=None,
        project_id=PROJECT_ID,
    ):
        return AttributionEvent(
            id=event_id,
            project_id=project_id,
            user_identifier=user,
            event_type=event_type,
            event_timestamp=timestamp,
            channel_id=channel_id,
            event_value=value,
            session_id=session_id,
        )

    return _make_event


@pytest.fixture
def march_window():
    """Date window covering March 2025."""
    return (
        datetime(2025, 3, 1, tzinfo=UTC),
        datetime(2025, 3, 31, 23, 59, 59, tzinfo=UTC),
    )


@pytest.fixture
def sample_channels():
    """Registered channels for project 7."""
    return [
        AttributionChannel(id=1, project_id=PROJECT_ID, name="Google Ads", category=ChannelCategory.PAID,
                           source="google", medium="cpc"),
        AttributionChannel(id=2, project_id=PROJECT_ID, name="Email", category=ChannelCategory.EMAIL,
                           source="newsletter", medium="email"),
        AttributionChannel(id=3, project_id=PROJECT_ID, name="Organic Search", category=ChannelCategory.ORGANIC,
                           source="google", medium="organic"),
        AttributionChannel(id=4, project_id=PROJECT_ID, name="Facebook", category=ChannelCategory.SOCIAL,
                           source="facebook", medium="social"),
    ]


@pytest.fixture
def sample_events(make_event):
    """
    Two converting journeys and one non-converting visit in March 2025.

    visitor-1: Google Ads (Mar 1) -> Email (Mar 2) -> converts via Email (Mar 3), $100
    visitor-2: Organic Search (Mar 5 09:00) -> converts via Organic Search (Mar 5 12:00), $50
    visitor-3: Facebook visit only (Mar 6)
    """
    return [
        make_event(101, datetime(2025, 3, 1, 10, tzinfo=UTC), channel_id=1,
                   user="visitor-1", session_id="s1"),
        make_event(102, datetime(2025, 3, 2, 10, tzinfo=UTC), channel_id=2,
                   user="visitor-1", session_id="s2"),
        make_event(103, datetime(2025, 3, 3, 10, tzinfo=UTC), channel_id=2,
                   event_type=EventType.CONVERSION, value=100.0, user="visitor-1", session_id="s2"),
        make_event(201, datetime(2025, 3, 5, 9, tzinfo=UTC), channel_id=3,
                   event_type=EventType.PAGE_VIEW, user="visitor-2", session_id="s3"),
        make_event(202, datetime(2025, 3, 5, 12, tzinfo=UTC), channel_id=3,
                   event_type=EventType.CONVERSION, value=50.0, user="visitor-2", session_id="s3"),
        make_event(301, datetime(2025, 3, 6, 15, tzinfo=UTC), channel_id=4,
                   event_type=EventType.PAGE_VIEW, user="visitor-3", session_id="s4"),
    ]


@pytest.fixture
def sample_repository(sample_events, sample_channels):
    """In-memory repository over the sample events and channels."""
    return InMemoryAttributionRepository(sample_events, sample_channels)

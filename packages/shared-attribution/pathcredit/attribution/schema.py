"""
Attribution schema - events, channels and the results derived from them.

Events arrive with their channel already resolved by the ingestion side.
Everything downstream of the calculator (touchpoints, channel rollups,
conversion paths, ROI rows) is derived data and is never mutated in place.

All timestamps are expected to be timezone-aware datetimes in UTC. Naive
datetimes are accepted and read as UTC wall-clock time.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pathcredit.attribution.exceptions import InvalidArgumentError

UNKNOWN_CHANNEL_NAME = "(unknown)"


class EventType(str, Enum):
    """Type of tracked event."""

    PAGE_VIEW = "page_view"
    CLICK = "click"
    CONVERSION = "conversion"
    FORM_SUBMIT = "form_submit"
    SIGNUP = "signup"
    PURCHASE = "purchase"
    CUSTOM = "custom"


class ChannelCategory(str, Enum):
    """Channel grouping used for display."""

    ORGANIC = "organic"
    PAID = "paid"
    SOCIAL = "social"
    EMAIL = "email"
    DIRECT = "direct"
    REFERRAL = "referral"
    OTHER = "other"


class AttributionModel(str, Enum):
    """Attribution model for distributing conversion credit."""

    FIRST_TOUCH = "first_touch"
    LAST_TOUCH = "last_touch"
    LINEAR = "linear"  # Equal credit to all touchpoints
    TIME_DECAY = "time_decay"  # 7-day half-life
    U_SHAPED = "u_shaped"  # 40% first, 40% last, 20% middle

    @classmethod
    def parse(cls, value: AttributionModel | str) -> AttributionModel:
        """Return the model for an enum member or its literal identifier.

        Raises:
            InvalidArgumentError: If the value is not a supported model.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgumentError(f"Unknown attribution model: {value!r}") from None


def parse_timestamp(value: Any, field_name: str = "timestamp") -> datetime:
    """Parse an ISO-8601 string or datetime into a datetime.

    Raises:
        ValueError: If the value is missing or cannot be parsed.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid {field_name} format: {value}") from e
    raise ValueError(f"Missing or invalid {field_name}: {value!r}")


def as_utc(timestamp: datetime) -> datetime:
    """Return an aware UTC datetime; naive datetimes are read as UTC wall-clock time."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(UTC)


def _coerce_id(value: Any) -> Any:
    """Turn integral floats (pandas fills int columns with NaN) back into ints."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


@dataclass(frozen=True)
class AttributionEvent:
    """
    A recorded touchpoint or conversion event.

    Example:
        event = AttributionEvent(
            id=42,
            project_id=7,
            user_identifier="visitor-123",
            event_type=EventType.CLICK,
            event_timestamp=datetime(2025, 3, 1, 9, 30, tzinfo=UTC),
            channel_id=3,
        )
    """

    id: Any
    project_id: Any
    user_identifier: str
    event_type: EventType
    event_timestamp: datetime
    channel_id: Any | None = None
    event_value: float = 0.0
    session_id: str | None = None
    event_name: str | None = None
    created_at: datetime | None = None

    @property
    def is_conversion(self) -> bool:
        """Return True for conversion events."""
        return self.event_type == EventType.CONVERSION

    @property
    def session_key(self) -> str:
        """Session identifier, falling back to the user when untracked."""
        return self.session_id or self.user_identifier

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_identifier": self.user_identifier,
            "event_type": self.event_type.value,
            "event_timestamp": self.event_timestamp.isoformat(),
            "channel_id": self.channel_id,
            "event_value": self.event_value,
            "session_id": self.session_id,
            "event_name": self.event_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttributionEvent:
        """Create an AttributionEvent from a dictionary.

        Raises:
            ValueError: If a required field is missing or a value is malformed.
        """
        for required in ("id", "project_id", "user_identifier", "event_type", "event_timestamp"):
            if data.get(required) is None:
                raise ValueError(f"Missing required field: {required}")

        raw_value = data.get("event_value")
        try:
            event_value = float(raw_value) if raw_value is not None else 0.0
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid event_value: {raw_value}") from e

        try:
            event_type = EventType(data["event_type"])
        except ValueError as e:
            raise ValueError(f"Invalid event_type: {data['event_type']}") from e

        created_at = data.get("created_at")

        return cls(
            id=_coerce_id(data["id"]),
            project_id=_coerce_id(data["project_id"]),
            user_identifier=str(data["user_identifier"]),
            event_type=event_type,
            event_timestamp=parse_timestamp(data["event_timestamp"], "event_timestamp"),
            channel_id=_coerce_id(data.get("channel_id")),
            event_value=event_value,
            session_id=data.get("session_id"),
            event_name=data.get("event_name"),
            created_at=parse_timestamp(created_at, "created_at") if created_at else None,
        )


@dataclass
class AttributionChannel:
    """A named traffic source/medium/campaign grouping."""

    id: Any
    project_id: Any
    name: str
    category: ChannelCategory = ChannelCategory.OTHER
    source: str | None = None
    medium: str | None = None
    campaign: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "category": self.category.value,
            "source": self.source,
            "medium": self.medium,
            "campaign": self.campaign,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttributionChannel:
        """Create an AttributionChannel from a dictionary."""
        if data.get("id") is None or not data.get("name"):
            raise ValueError("Missing required field: id or name")

        try:
            category = ChannelCategory(data.get("category") or "other")
        except ValueError:
            category = ChannelCategory.OTHER

        return cls(
            id=_coerce_id(data["id"]),
            project_id=_coerce_id(data.get("project_id")),
            name=data["name"],
            category=category,
            source=data.get("source"),
            medium=data.get("medium"),
            campaign=data.get("campaign"),
        )


@dataclass
class AttributionCalculationRequest:
    """Input to the attribution calculator."""

    project_id: Any
    user_identifier: str
    conversion_event_id: Any
    model: AttributionModel | str
    touchpoints: Sequence[AttributionEvent] = field(default_factory=list)


@dataclass(frozen=True)
class AttributionTouchpoint:
    """A touchpoint annotated with its share of conversion credit."""

    touchpoint_event_id: Any
    channel_id: Any | None
    position: int  # 1-based, chronological
    weight: float
    attributed_value: float
    time_to_conversion_hours: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "touchpoint_event_id": self.touchpoint_event_id,
            "channel_id": self.channel_id,
            "position": self.position,
            "weight": self.weight,
            "attributed_value": self.attributed_value,
            "time_to_conversion_hours": self.time_to_conversion_hours,
        }


@dataclass
class AttributionResult:
    """Result of attribution for a single conversion."""

    conversion_event_id: Any
    model: AttributionModel
    touchpoints: list[AttributionTouchpoint] = field(default_factory=list)
    total_attributed_value: float = 0.0

    @property
    def total_weight(self) -> float:
        """Sum of touchpoint weights (1.0 for any non-empty result)."""
        return sum(tp.weight for tp in self.touchpoints)

    @property
    def attributed_value_sum(self) -> float:
        """Sum of per-touchpoint attributed values."""
        return sum(tp.attributed_value for tp in self.touchpoints)

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversion_event_id": self.conversion_event_id,
            "model": self.model.value,
            "touchpoints": [tp.to_dict() for tp in self.touchpoints],
            "total_attributed_value": self.total_attributed_value,
        }


@dataclass
class ChannelPerformance:
    """Per-channel rollup of attributed touchpoints."""

    channel_id: Any | None
    channel_name: str
    channel_category: str
    total_touchpoints: int = 0
    total_conversions: int = 0
    attributed_conversions: float = 0.0  # Σweight, model dependent
    total_revenue: float = 0.0
    conversion_rate: float = 0.0
    avg_time_to_conversion: float = 0.0
    avg_touchpoints: float = 0.0
    sessions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "channel_category": self.channel_category,
            "total_touchpoints": self.total_touchpoints,
            "total_conversions": self.total_conversions,
            "attributed_conversions": self.attributed_conversions,
            "total_revenue": self.total_revenue,
            "conversion_rate": self.conversion_rate,
            "avg_time_to_conversion": self.avg_time_to_conversion,
            "avg_touchpoints": self.avg_touchpoints,
            "sessions": self.sessions,
        }


@dataclass
class ConversionPath:
    """A unique ordered channel sequence and the conversions that followed it."""

    path: tuple[str, ...]
    path_string: str
    conversions: int = 0
    revenue: float = 0.0
    avg_touchpoints: float = 0.0
    avg_time_to_conversion: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": list(self.path),
            "path_string": self.path_string,
            "conversions": self.conversions,
            "revenue": self.revenue,
            "avg_touchpoints": self.avg_touchpoints,
            "avg_time_to_conversion": self.avg_time_to_conversion,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversionPath:
        return cls(
            path=tuple(data.get("path") or ()),
            path_string=data.get("path_string", ""),
            conversions=int(data.get("conversions", 0)),
            revenue=float(data.get("revenue", 0.0)),
            avg_touchpoints=float(data.get("avg_touchpoints", 0.0)),
            avg_time_to_conversion=float(data.get("avg_time_to_conversion", 0.0)),
        )


@dataclass
class ROIMetrics:
    """
    Return on spend for one channel.

    Spend-derived fields stay None when no positive spend is known, so
    "no spend data" is distinguishable from "zero return".
    """

    channel_id: Any | None
    channel_name: str
    total_revenue: float = 0.0
    total_conversions: int = 0
    revenue_per_conversion: float = 0.0
    total_spend: float | None = None
    roi: float | None = None  # (revenue - spend) / spend
    roas: float | None = None  # revenue / spend
    cost_per_conversion: float | None = None
    profit_margin: float | None = None  # (revenue - spend) / revenue

    @property
    def has_spend_data(self) -> bool:
        return self.total_spend is not None and self.total_spend > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "total_revenue": self.total_revenue,
            "total_conversions": self.total_conversions,
            "revenue_per_conversion": self.revenue_per_conversion,
            "total_spend": self.total_spend,
            "roi": self.roi,
            "roas": self.roas,
            "cost_per_conversion": self.cost_per_conversion,
            "profit_margin": self.profit_margin,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ROIMetrics:
        return cls(
            channel_id=data.get("channel_id"),
            channel_name=data.get("channel_name", UNKNOWN_CHANNEL_NAME),
            total_revenue=float(data.get("total_revenue", 0.0)),
            total_conversions=int(data.get("total_conversions", 0)),
            revenue_per_conversion=float(data.get("revenue_per_conversion", 0.0)),
            total_spend=data.get("total_spend"),
            roi=data.get("roi"),
            roas=data.get("roas"),
            cost_per_conversion=data.get("cost_per_conversion"),
            profit_margin=data.get("profit_margin"),
        )


@dataclass
class ROISummary:
    """Portfolio totals across ROI rows."""

    total_revenue: float = 0.0
    total_spend: float | None = None
    overall_roi: float | None = None
    overall_roas: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_revenue": self.total_revenue,
            "total_spend": self.total_spend,
            "overall_roi": self.overall_roi,
            "overall_roas": self.overall_roas,
        }


@dataclass
class ModelTotals:
    """A channel's totals under one attribution model."""

    conversions: int = 0
    attributed_conversions: float = 0.0
    revenue: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversions": self.conversions,
            "attributed_conversions": self.attributed_conversions,
            "revenue": self.revenue,
        }

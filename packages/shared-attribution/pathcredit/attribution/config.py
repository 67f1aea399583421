"""Configuration for the channel performance aggregator."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from pathcredit.attribution.schema import UNKNOWN_CHANNEL_NAME


class AggregatorConfig(BaseModel):
    """Configuration for ChannelPerformanceAggregator."""

    max_workers: int = Field(default=1, ge=1)  # 1 runs calculations inline
    path_limit: int = Field(default=10, ge=1)
    unknown_channel_name: str = UNKNOWN_CHANNEL_NAME
    path_separator: str = " → "

    @classmethod
    def from_env(cls) -> AggregatorConfig:
        """Load configuration from environment variables."""
        return cls(
            max_workers=int(os.getenv("PATHCREDIT_MAX_WORKERS", "1")),
            path_limit=int(os.getenv("PATHCREDIT_PATH_LIMIT", "10")),
            unknown_channel_name=os.getenv("PATHCREDIT_UNKNOWN_CHANNEL", UNKNOWN_CHANNEL_NAME),
            path_separator=os.getenv("PATHCREDIT_PATH_SEPARATOR", " → "),
        )

# src/hosting/models.py — v1
"""Hosting provider domain models: Channel and provider responses.

Channels live entirely in the hosting provider; these models are
observations of provider state, never a local source of truth.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

# Production channel; always present and never reclaimable.
LIVE_CHANNEL_ID = "live"


class Channel(BaseModel):
    """A preview channel as reported by the provider."""

    id: str
    site: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    url: str = ""
    expire_time: datetime | None = None

    @property
    def sort_time(self) -> datetime | None:
        """Creation time, falling back to last update."""
        return self.created_at or self.updated_at


class ProviderDeployResponse(BaseModel):
    """Raw result of one channel deploy call."""

    success: bool
    raw_output: str = ""
    error_code: int | str | None = None
    error: str | None = None


class ProviderDeleteResponse(BaseModel):
    """Raw result of one channel delete call."""

    success: bool
    error: str | None = None

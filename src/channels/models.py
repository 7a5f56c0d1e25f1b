# src/channels/models.py — v1
"""Channel reclamation results: per-site outcome and run-level summary."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

ReclaimMode = Literal["routine", "aggressive"]


class SiteReclaimResult(BaseModel):
    """What happened to one site's channels during a reclaim pass."""

    site: str
    found: int = 0
    keep_count: int = 0
    kept: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    skipped: bool = False
    skip_reason: str | None = None
    dry_run: bool = False
    error: str | None = None

    @property
    def attempted(self) -> int:
        return len(self.deleted) + len(self.failed)

    @property
    def remaining(self) -> int:
        """Channels left on the site afterwards (dry runs delete nothing)."""
        if self.dry_run:
            return self.found
        return self.found - len(self.deleted)

    @property
    def success(self) -> bool:
        return self.error is None and not self.failed


class ReclaimSummary(BaseModel):
    """Aggregate of a reclaim pass across sites."""

    mode: ReclaimMode = "routine"
    keep_count: int
    threshold: int | None = None
    sites: dict[str, SiteReclaimResult] = Field(default_factory=dict)
    duration_ms: int = 0

    @property
    def total_deleted(self) -> int:
        return sum(len(s.deleted) for s in self.sites.values())

    @property
    def total_failed(self) -> int:
        return sum(len(s.failed) for s in self.sites.values())

    @property
    def success(self) -> bool:
        return all(s.success for s in self.sites.values())

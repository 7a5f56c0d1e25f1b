# src/deploy/models.py — v1
"""Deployment domain models: DeployArtifact, PreviewUrls, DeploymentResult."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from previewflow.core.models import utc_now


class DeployOutcome(str, Enum):
    """Classification of a provider deploy response."""

    SUCCESS = "success"
    BENIGN = "benign"
    QUOTA_EXCEEDED = "quota_exceeded"
    FAILURE = "failure"

    @property
    def is_success(self) -> bool:
        return self in (DeployOutcome.SUCCESS, DeployOutcome.BENIGN)


class DeployArtifact(BaseModel):
    """One built package headed for one hosting site."""

    site: str
    role: str
    path: Path


class PreviewUrls(BaseModel):
    """Role-labeled preview URLs of one deployment."""

    urls: dict[str, str] = Field(default_factory=dict)
    generic: list[str] = Field(default_factory=list)
    channel_id: str | None = None
    source: Literal["current-deployment", "log-fallback", "stored"] = "current-deployment"
    is_fallback: bool = False
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def empty(self) -> bool:
        return not self.urls and not self.generic


class DeploymentResult(BaseModel):
    """Outcome of DeploymentManager.deploy()."""

    success: bool
    channel_id: str
    urls: dict[str, str] = Field(default_factory=dict)
    raw_output: str = ""
    quota_exceeded: bool = False
    error: str | None = None
    guidance: str | None = None
    attempts: int = 0
    recovery_attempted: bool = False
    is_fallback: bool = False
    outcome: DeployOutcome | None = None

# src/reporting/base_report.py — v1
"""Report generator contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, Field

from previewflow.pipeline.state import RunContext


class ReportArtifact(BaseModel):
    """What a report generator produced."""

    path: Path | None = None
    files: list[Path] = Field(default_factory=list)
    fallback: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.path is not None and not self.fallback


class BaseReportGenerator(ABC):
    """Render a finished (or halted) run.

    Implementations must never raise: internal failures degrade to a
    minimal fallback artifact.
    """

    @abstractmethod
    def generate(self, context: RunContext) -> ReportArtifact:
        """Render the run context into report files."""

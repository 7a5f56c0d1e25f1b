# src/core/models.py — v1
"""Core ledger models: Phase, Step, RunWarning, HaltInfo, CommandResult."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PhaseName(str, Enum):
    """Pipeline phases, declared in execution order."""

    SETUP = "setup"
    VALIDATION = "validation"
    BUILD = "build"
    DEPLOY = "deploy"
    CLEANUP = "cleanup"
    REPORT = "report"

    @classmethod
    def ordered(cls) -> list[PhaseName]:
        return list(cls)


class PhaseStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


# Allowed forward transitions; terminal states map to nothing.
PHASE_TRANSITIONS: dict[PhaseStatus, frozenset[PhaseStatus]] = {
    PhaseStatus.PENDING: frozenset({PhaseStatus.RUNNING, PhaseStatus.SKIPPED}),
    PhaseStatus.RUNNING: frozenset({PhaseStatus.SUCCEEDED, PhaseStatus.FAILED}),
    PhaseStatus.SUCCEEDED: frozenset(),
    PhaseStatus.FAILED: frozenset(),
    PhaseStatus.SKIPPED: frozenset(),
}


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


Severity = Literal["info", "warning", "error"]


class Step(BaseModel):
    """Outcome of one named unit of work inside a phase."""

    name: str
    phase: str
    success: bool
    duration_ms: int = Field(ge=0)
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class Phase(BaseModel):
    """One pipeline phase with its steps. Status only moves forward."""

    name: PhaseName
    order: int
    status: PhaseStatus = PhaseStatus.PENDING
    steps: dict[str, Step] = Field(default_factory=dict)
    started_at: datetime | None = None
    duration_ms: int = 0
    error: str | None = None

    @property
    def succeeded_steps(self) -> int:
        return sum(1 for s in self.steps.values() if s.success)

    @property
    def failed_steps(self) -> int:
        return sum(1 for s in self.steps.values() if not s.success)


class RunWarning(BaseModel):
    """Independent log entry; may outlive the step it refers to."""

    message: str
    phase: str
    step: str | None = None
    severity: Severity = "warning"
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> tuple[str, str, str | None]:
        return (self.message, self.phase, self.step)


class HaltInfo(BaseModel):
    """Why a run stopped early and what the operator should do next."""

    phase: str
    error_type: str
    message: str
    next_action: str | None = None


class CommandResult(BaseModel):
    """Outcome of one external command invocation."""

    args: list[str] = Field(default_factory=list)
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False
    missing_binary: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and self.error is None

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as most tools split messages across both."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

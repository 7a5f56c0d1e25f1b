# src/pipeline/state.py — v1
"""Run context shared by every phase of a pipeline run.

The RunContext is created at run start, passed by reference to every
component, and handed to the report generator at the end. It owns the
phase state machine and the step/warning ledger. Parallel sub-tasks write
to distinct keys (package, site, check), so no locking is needed.
"""

from __future__ import annotations

import uuid
from collections import Counter
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from previewflow.build.models import PackageBuildResult
from previewflow.channels.models import ReclaimSummary
from previewflow.core.models import (
    PHASE_TRANSITIONS,
    HaltInfo,
    Phase,
    PhaseName,
    PhaseStatus,
    RunStatus,
    RunWarning,
    Severity,
    Step,
    utc_now,
)
from previewflow.deploy.models import PreviewUrls
from previewflow.quality.models import CheckResult


class PhaseTransitionError(Exception):
    """Raised on a backward or otherwise illegal phase status change."""


def _initial_phases() -> list[Phase]:
    return [Phase(name=name, order=i) for i, name in enumerate(PhaseName.ordered())]


class RunContext(BaseModel):
    """Mutable state accumulating results across all pipeline phases."""

    # === IDENTITY ===
    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = Field(default_factory=utc_now)
    options: dict[str, Any] = Field(default_factory=dict)

    # === LEDGER ===
    phases: list[Phase] = Field(default_factory=_initial_phases)
    warnings: list[RunWarning] = Field(default_factory=list)

    # === PHASE OUTPUTS ===
    check_results: dict[str, CheckResult] = Field(default_factory=dict)
    package_results: dict[str, PackageBuildResult] = Field(default_factory=dict)
    channel_id: str | None = None
    preview_urls: PreviewUrls | None = None
    cleanup_summary: ReclaimSummary | None = None

    # === TERMINAL STATE ===
    status: RunStatus = RunStatus.PENDING
    halt: HaltInfo | None = None
    finished_at: datetime | None = None

    _warning_keys: set[tuple[str, str, str | None]] = PrivateAttr(default_factory=set)

    def model_post_init(self, __context: Any) -> None:
        self._warning_keys = {w.key for w in self.warnings}

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def phase(self, name: PhaseName | str) -> Phase:
        """Return the phase with this name.

        Raises:
            KeyError: If no such phase exists in this run.
        """
        key = _phase_key(name)
        for phase in self.phases:
            if phase.name.value == key:
                return phase
        raise KeyError(f"Unknown phase: {key!r}")

    def start_phase(self, name: PhaseName | str) -> Phase:
        phase = self._transition(name, PhaseStatus.RUNNING)
        phase.started_at = utc_now()
        return phase

    def complete_phase(self, name: PhaseName | str, duration_ms: int) -> Phase:
        phase = self._transition(name, PhaseStatus.SUCCEEDED)
        phase.duration_ms = max(0, duration_ms)
        return phase

    def fail_phase(
        self, name: PhaseName | str, duration_ms: int, error: str | None = None
    ) -> Phase:
        phase = self._transition(name, PhaseStatus.FAILED)
        phase.duration_ms = max(0, duration_ms)
        phase.error = error
        return phase

    def skip_phase(self, name: PhaseName | str) -> Phase:
        phase = self._transition(name, PhaseStatus.SKIPPED)
        phase.duration_ms = 0
        return phase

    def _transition(self, name: PhaseName | str, target: PhaseStatus) -> Phase:
        phase = self.phase(name)
        if target not in PHASE_TRANSITIONS[phase.status]:
            raise PhaseTransitionError(
                f"Phase '{phase.name.value}' cannot move from "
                f"{phase.status.value} to {target.value}"
            )
        phase.status = target
        return phase

    # ------------------------------------------------------------------
    # Step / warning ledger
    # ------------------------------------------------------------------

    def record_step(
        self,
        name: str,
        phase: PhaseName | str,
        success: bool,
        duration_ms: int,
        error: str | None = None,
    ) -> Step:
        """Store a step outcome; the same name within a phase is overwritten.

        A failed step with an error message also produces an error-severity
        warning.
        """
        target = self.phase(phase)
        step = Step(
            name=name,
            phase=target.name.value,
            success=success,
            duration_ms=max(0, int(duration_ms)),
            error=error,
        )
        target.steps[name] = step
        if not success and error:
            self.record_warning(error, target.name.value, name, severity="error")
        return step

    def record_warning(
        self,
        message: str,
        phase: PhaseName | str,
        step: str | None = None,
        severity: Severity = "warning",
    ) -> bool:
        """Append a warning unless (message, phase, step) is already recorded.

        Returns:
            True if the warning was inserted, False if it was a duplicate.
        """
        warning = RunWarning(
            message=message, phase=_phase_key(phase), step=step, severity=severity
        )
        if warning.key in self._warning_keys:
            return False
        self._warning_keys.add(warning.key)
        self.warnings.append(warning)
        return True

    def category_counts(self) -> dict[str, dict[str, int]]:
        """Warning counts per phase and severity, for summary consumption."""
        counts: dict[str, Counter[str]] = {}
        for w in self.warnings:
            counts.setdefault(w.phase, Counter())[w.severity] += 1
        return {
            phase: {sev: c.get(sev, 0) for sev in ("info", "warning", "error")}
            for phase, c in counts.items()
        }

    def steps(self) -> list[Step]:
        """All steps across phases, in phase order."""
        return [s for p in self.phases for s in p.steps.values()]

    # ------------------------------------------------------------------
    # Terminal state
    # ------------------------------------------------------------------

    def mark_halted(self, halt: HaltInfo) -> None:
        self.halt = halt
        self.status = RunStatus.FAILED

    def finish(self) -> None:
        """Settle the terminal status once no more phases will run.

        Only a halt fails the run; failures of non-critical phases stay
        visible on the phase and in the warnings.
        """
        self.finished_at = utc_now()
        self.status = RunStatus.FAILED if self.halt is not None else RunStatus.SUCCEEDED

    @property
    def duration_ms(self) -> int:
        end = self.finished_at or utc_now()
        return int((end - self.started_at).total_seconds() * 1000)


def _phase_key(name: PhaseName | str) -> str:
    return name.value if isinstance(name, PhaseName) else str(name)

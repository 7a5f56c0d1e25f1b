# src/quality/models.py — v1
"""Quality gate models: ValidationOutcome, CheckResult, QualityReport."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ValidationOutcome(BaseModel):
    """A validator's verdict on one tool run."""

    passed: bool
    issues: list[str] = Field(default_factory=list)


class CheckResult(BaseModel):
    """Recorded result of one quality check.

    `passed` is the validator's verdict on the original run. Remediation
    outcomes are tracked separately and never change it.
    """

    name: str
    passed: bool
    exit_code: int | None = None
    duration_ms: int = 0
    issues: list[str] = Field(default_factory=list)
    output_excerpt: str = ""
    timed_out: bool = False
    required: bool = False
    parallel: bool = False
    recovery_attempted: bool = False
    recovery_success: bool | None = None
    cached: bool = False


class QualityReport(BaseModel):
    """Aggregate of a quality gate run."""

    success: bool
    results: dict[str, CheckResult] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    stopped_early: bool = False
    blocking: list[str] = Field(default_factory=list)

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [r for r in self.results.values() if not r.passed]

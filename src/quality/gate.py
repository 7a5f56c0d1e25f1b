# src/quality/gate.py — v1
"""Quality gate: run configured checks and decide what blocks the run.

Parallel-safe checks fan out together (join-all). The others run one at a
time in declaration order and, unless continue_on_failure is set, stop at
the first failure. A failing check's on_failure hook runs once; its outcome
is recorded beside the check and never changes the verdict.

Failures only block the run when the check is `required` or the gate was
built with halt_on_failure; everything else is reported as a warning.

With a cache store, a fully passing report is stored under a fingerprint
of the validation inputs and the check definitions; an unchanged
workspace reuses it instead of running the checks again.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from pydantic import ValidationError

from previewflow.cache.fingerprint import compute_fingerprint
from previewflow.cache.json_store import JsonCacheStore
from previewflow.core.commands import CommandRunner, run_command
from previewflow.core.errors import QualityCheckError
from previewflow.core.models import CommandResult, PhaseName
from previewflow.logging.context import step_context
from previewflow.pipeline.state import RunContext
from previewflow.quality.models import CheckResult, QualityReport, ValidationOutcome
from previewflow.quality.validators import Validator, default_validator

logger = logging.getLogger(__name__)

PHASE = PhaseName.VALIDATION
EXCERPT_CHARS = 2000
CACHE_KEY = "validation"

Remediation = Callable[[CheckResult], Awaitable[bool]]


@dataclass
class QualityCheck:
    """One configured quality check."""

    name: str
    command: str | Sequence[str]
    validator: Validator = default_validator
    parallel_safe: bool = False
    on_failure: Remediation | None = None
    required: bool = False
    timeout_s: float = 180.0
    cwd: Path | None = None
    env: dict[str, str] = field(default_factory=dict)


class QualityGate:
    """Execute quality checks and aggregate their verdicts.

    Args:
        runner: Command runner (injectable for tests).
        continue_on_failure: Keep running sequential checks after a failure.
        halt_on_failure: Treat every failing check as blocking.
        cache: Store for passing reports; None disables reuse.
        cache_inputs: Files and directories the checks read.
        workspace: Root the input paths are fingerprinted relative to.
    """

    def __init__(
        self,
        runner: CommandRunner = run_command,
        continue_on_failure: bool = False,
        halt_on_failure: bool = False,
        cache: JsonCacheStore | None = None,
        cache_inputs: Sequence[Path] = (),
        workspace: Path | None = None,
    ) -> None:
        self._runner = runner
        self._continue_on_failure = continue_on_failure
        self._halt_on_failure = halt_on_failure
        self._cache = cache
        self._cache_inputs = list(cache_inputs)
        self._workspace = workspace

    async def run_checks(
        self,
        checks: Sequence[QualityCheck],
        context: RunContext | None = None,
    ) -> QualityReport:
        """Run every check and return the report. Never raises for failures."""
        fingerprint = None
        if self._cache is not None:
            fingerprint = self._fingerprint(checks)
            cached = await self._cached_report(fingerprint)
            if cached is not None:
                if context is not None:
                    _record(context, cached)
                    context.record_warning(
                        "Validation inputs unchanged; reused cached check results",
                        PHASE, severity="info",
                    )
                return cached

        results: dict[str, CheckResult] = {}
        stopped_early = False

        parallel = [c for c in checks if c.parallel_safe]
        sequential = [c for c in checks if not c.parallel_safe]

        if parallel:
            outcomes = await asyncio.gather(
                *(self._run_check(c) for c in parallel), return_exceptions=True
            )
            for check, outcome in zip(parallel, outcomes):
                if isinstance(outcome, BaseException):
                    outcome = _crashed(check, outcome)
                results[check.name] = outcome

        for i, check in enumerate(sequential):
            try:
                result = await self._run_check(check)
            except Exception as e:
                result = _crashed(check, e)
            results[check.name] = result
            if not result.passed and not self._continue_on_failure:
                remaining = len(sequential) - i - 1
                if remaining:
                    stopped_early = True
                    logger.warning(
                        "Check '%s' failed; skipping %d remaining sequential check(s)",
                        check.name, remaining,
                    )
                break

        report = QualityReport(
            success=all(r.passed for r in results.values()),
            results=results,
            stopped_early=stopped_early,
        )
        for result in report.failed_checks:
            if result.required or self._halt_on_failure:
                report.blocking.append(result.name)
            else:
                report.warnings.append(_summary(result))

        if context is not None:
            _record(context, report)
        logger.info(
            "Quality checks: %d/%d passed", len(results) - len(report.failed_checks), len(results)
        )
        if fingerprint is not None and report.success and results:
            await self._cache.put(CACHE_KEY, fingerprint, {"report": report.model_dump(mode="json")})
        return report

    def raise_for_blocking(self, report: QualityReport) -> None:
        """Escalate the first blocking failure.

        Raises:
            QualityCheckError: If any failed check blocks the run.
        """
        if not report.blocking:
            return
        result = report.results[report.blocking[0]]
        raise QualityCheckError(_summary(result), check_name=result.name)

    def _fingerprint(self, checks: Sequence[QualityCheck]) -> str:
        definitions = [
            f"{c.name}|{_command_text(c.command)}|{c.required}|{c.parallel_safe}" for c in checks
        ]
        return compute_fingerprint(
            CACHE_KEY, self._cache_inputs, root=self._workspace, extra=definitions
        )

    async def _cached_report(self, fingerprint: str) -> QualityReport | None:
        data = await self._cache.lookup(CACHE_KEY, fingerprint)
        if data is None:
            return None
        try:
            report = QualityReport.model_validate(data["report"])
        except (KeyError, ValidationError) as e:
            logger.warning("Ignoring unusable validation cache entry: %s", e)
            return None
        for result in report.results.values():
            result.cached = True
        logger.info("Reusing %d cached check result(s)", len(report.results))
        return report

    async def _run_check(self, check: QualityCheck) -> CheckResult:
        with step_context(f"check:{check.name}"):
            return await self._execute(check)

    async def _execute(self, check: QualityCheck) -> CheckResult:
        logger.info("Running check '%s'", check.name)
        command_result = await self._runner(
            check.command, cwd=check.cwd, timeout_s=check.timeout_s, env=check.env or None
        )
        try:
            outcome = check.validator(command_result)
        except Exception as e:
            logger.exception("Validator for '%s' raised", check.name)
            outcome = ValidationOutcome(passed=False, issues=[f"validator error: {e}"])

        result = CheckResult(
            name=check.name,
            passed=outcome.passed,
            exit_code=command_result.exit_code,
            duration_ms=command_result.duration_ms,
            issues=outcome.issues,
            output_excerpt=_excerpt(command_result),
            timed_out=command_result.timed_out,
            required=check.required,
            parallel=check.parallel_safe,
        )

        if not result.passed and check.on_failure is not None:
            result.recovery_attempted = True
            try:
                result.recovery_success = bool(await check.on_failure(result))
            except Exception as e:
                logger.warning("Remediation for '%s' raised: %s", check.name, e)
                result.recovery_success = False
        return result


def _command_text(command: str | Sequence[str]) -> str:
    return command if isinstance(command, str) else " ".join(command)


def _excerpt(result: CommandResult) -> str:
    output = result.output
    return output[-EXCERPT_CHARS:] if len(output) > EXCERPT_CHARS else output


def _crashed(check: QualityCheck, error: BaseException) -> CheckResult:
    return CheckResult(
        name=check.name,
        passed=False,
        issues=[f"check crashed: {error}"],
        required=check.required,
        parallel=check.parallel_safe,
    )


def _summary(result: CheckResult) -> str:
    detail = result.issues[0] if result.issues else "failed"
    return f"Quality check '{result.name}' failed: {detail}"


def _record(context: RunContext, report: QualityReport) -> None:
    for name, result in report.results.items():
        context.check_results[name] = result
        context.record_step(
            f"check:{name}",
            PHASE,
            result.passed,
            result.duration_ms,
            None if result.passed else _summary(result),
        )
        if result.recovery_attempted:
            outcome = "succeeded" if result.recovery_success else "failed"
            context.record_warning(
                f"Automatic fix for '{name}' {outcome}", PHASE, f"check:{name}", severity="info"
            )
    if report.stopped_early:
        context.record_warning(
            "Sequential quality checks stopped after the first failure", PHASE
        )

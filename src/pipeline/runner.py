# src/pipeline/runner.py — v1
"""Pipeline runner: execute the fixed phase sequence against a RunContext.

Phases run strictly in order: setup < validation < build < deploy <
cleanup < report. A skipped phase is marked SKIPPED with zero duration.
An exception from a critical phase halts the run: later phases stay
PENDING, the halt records one concrete next action, and report generation
is still attempted. Non-critical phase failures are recorded and the run
continues. No phase is ever retried as a whole.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from previewflow.core.errors import WorkflowError
from previewflow.core.models import HaltInfo, PhaseName, RunStatus
from previewflow.logging.context import set_phase_context, set_run_context
from previewflow.pipeline.events import EventPublisher, EventType, ProgressEvent
from previewflow.pipeline.state import RunContext
from previewflow.reporting.base_report import BaseReportGenerator, ReportArtifact

logger = logging.getLogger(__name__)

PhaseHandler = Callable[[RunContext], Awaitable[None]]


@dataclass
class PhaseSpec:
    """How the runner treats one phase."""

    name: PhaseName
    handler: PhaseHandler | None = None
    critical: bool = True
    skip: bool = False


class PipelineRunner:
    """Run phases in their fixed order, then report.

    Args:
        phases: Phase specs; REPORT is handled by the report generator and
            ignored here. Order follows PhaseName regardless of input order.
        report_generator: Renders the run; None disables reporting.
        publisher: Progress event publisher.
        skip_report: Mark the report phase skipped.
        options: Settings snapshot stored on new RunContexts.
    """

    def __init__(
        self,
        phases: Sequence[PhaseSpec],
        report_generator: BaseReportGenerator | None = None,
        publisher: EventPublisher | None = None,
        skip_report: bool = False,
        options: dict | None = None,
    ) -> None:
        order = {name: i for i, name in enumerate(PhaseName.ordered())}
        self._phases = sorted(
            (p for p in phases if p.name is not PhaseName.REPORT),
            key=lambda p: order[p.name],
        )
        self._report_generator = report_generator
        self._publisher = publisher or EventPublisher()
        self._skip_report = skip_report
        self._options = options or {}
        self.last_report: ReportArtifact | None = None

    async def run(self, context: RunContext | None = None) -> RunContext:
        """Execute every phase and return the populated context."""
        context = context or RunContext(options=dict(self._options))
        set_run_context(context.run_id)
        context.status = RunStatus.RUNNING
        self._emit("run_started", context, message=f"run {context.run_id}")

        for spec in self._phases:
            if context.halt is not None:
                break
            await self._run_phase(spec, context)

        context.finish()
        await self._report(context)
        set_phase_context(None)

        self._emit(
            "run_finished", context,
            message=context.status.value,
            data={"duration_ms": context.duration_ms, "warnings": len(context.warnings)},
        )
        logger.info(
            "Run %s %s in %dms with %d warning(s)",
            context.run_id, context.status.value, context.duration_ms, len(context.warnings),
        )
        return context

    async def _run_phase(self, spec: PhaseSpec, context: RunContext) -> None:
        phase = spec.name.value
        set_phase_context(phase)

        if spec.skip or spec.handler is None:
            context.skip_phase(spec.name)
            self._emit("phase_skipped", context, phase)
            logger.info("Skipping phase '%s'", phase)
            return

        context.start_phase(spec.name)
        self._emit("phase_started", context, phase)
        start = time.monotonic()
        try:
            await spec.handler(context)
        except Exception as exc:
            duration = _elapsed_ms(start)
            error = WorkflowError.wrap(exc, step=phase)
            context.fail_phase(spec.name, duration, str(error))
            context.record_warning(error.message, phase, error.step, severity="error")
            self._emit("phase_failed", context, phase, message=error.message)

            if spec.critical:
                self._halt(spec.name, error, context)
            else:
                logger.warning("Non-critical phase '%s' failed: %s", phase, error.message)
            return

        duration = _elapsed_ms(start)
        context.complete_phase(spec.name, duration)
        self._emit("phase_completed", context, phase, data={"duration_ms": duration})

    def _halt(self, phase: PhaseName, error: WorkflowError, context: RunContext) -> None:
        halt = HaltInfo(
            phase=phase.value,
            error_type=type(error).__name__,
            message=error.message,
            next_action=error.suggestion,
        )
        context.mark_halted(halt)
        logger.error("Run halted in phase '%s': %s", phase.value, error)
        if error.suggestion:
            logger.error("Next step: %s", error.suggestion)
        self._emit(
            "run_halted", context, phase.value,
            message=error.message,
            data={"next_action": error.suggestion},
        )

    async def _report(self, context: RunContext) -> None:
        if self._report_generator is None or self._skip_report:
            context.skip_phase(PhaseName.REPORT)
            self._emit("phase_skipped", context, PhaseName.REPORT.value)
            return

        set_phase_context(PhaseName.REPORT.value)
        halted = context.halt is not None
        if not halted:
            context.start_phase(PhaseName.REPORT)
            self._emit("phase_started", context, PhaseName.REPORT.value)

        start = time.monotonic()
        try:
            artifact = self._report_generator.generate(context)
        except Exception as e:
            logger.exception("Report generator raised")
            artifact = ReportArtifact(fallback=True, error=str(e))
        self.last_report = artifact

        if artifact.error:
            context.record_warning(
                f"Report generation degraded: {artifact.error}", PhaseName.REPORT
            )
        if halted:
            return

        duration = _elapsed_ms(start)
        if artifact.success:
            context.complete_phase(PhaseName.REPORT, duration)
            self._emit("phase_completed", context, PhaseName.REPORT.value)
        else:
            context.fail_phase(PhaseName.REPORT, duration, artifact.error)
            self._emit("phase_failed", context, PhaseName.REPORT.value, message=artifact.error or "")

    def _emit(
        self,
        event_type: EventType,
        context: RunContext,
        phase: str | None = None,
        message: str = "",
        data: dict | None = None,
    ) -> None:
        self._publisher.publish(ProgressEvent(
            type=event_type,
            run_id=context.run_id,
            phase=phase,
            message=message,
            data=data or {},
        ))


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)

# src/pipeline/factory.py — v1
"""Assemble a PipelineRunner and its collaborators from Settings."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from previewflow.auth.dependencies import check_dependencies
from previewflow.auth.gate import AuthGate
from previewflow.auth.models import AuthRequirements
from previewflow.auth.providers import FirebaseAuthProvider, GitAuthProvider
from previewflow.build.coordinator import BuildCoordinator, packages_from_settings
from previewflow.cache.json_store import JsonCacheStore
from previewflow.channels.reclaimer import ChannelReclaimer
from previewflow.config.settings import Settings
from previewflow.core.commands import CommandRunner, run_command
from previewflow.core.errors import (
    AuthenticationError,
    BuildError,
    DeploymentError,
    QuotaExceededError,
    WorkflowError,
)
from previewflow.core.models import PhaseName
from previewflow.deploy.manager import DeploymentManager
from previewflow.deploy.models import DeployArtifact
from previewflow.hosting.base_provider import BaseHostingProvider
from previewflow.hosting.provider_factory import create_hosting_provider
from previewflow.pipeline.events import (
    BaseEventSink,
    EventPublisher,
    JsonlEventSink,
    LoggingEventSink,
)
from previewflow.pipeline.runner import PhaseSpec, PipelineRunner
from previewflow.pipeline.state import RunContext
from previewflow.quality.checks import default_checks
from previewflow.quality.gate import QualityGate
from previewflow.reporting.markdown_report import MarkdownReportGenerator
from previewflow.storage import layout
from previewflow.vcs.base_vcs import BaseVCS
from previewflow.vcs.git_vcs import GitVCS

logger = logging.getLogger(__name__)


def artifacts_from_settings(settings: Settings) -> list[DeployArtifact]:
    """Pair each package's output dir with its hosting site and URL role."""
    return [
        DeployArtifact(site=site, role=role, path=spec.output_dir)
        for spec, site, role in zip(
            packages_from_settings(settings),
            settings.hosting_sites_list,
            settings.hosting_roles_list,
        )
    ]


def build_reclaimer(
    settings: Settings, provider: BaseHostingProvider | None = None
) -> ChannelReclaimer:
    return ChannelReclaimer(
        provider or create_hosting_provider(settings),
        aggressive_keep_count=settings.channel_aggressive_keep_count,
        dry_run=settings.dry_run,
    )


def build_runner(
    settings: Settings,
    provider: BaseHostingProvider | None = None,
    vcs: BaseVCS | None = None,
    auth_gate: AuthGate | None = None,
    runner: CommandRunner = run_command,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    which: Callable[[str], str | None] | None = None,
    sinks: list[BaseEventSink] | None = None,
) -> PipelineRunner:
    """Wire every phase handler from settings.

    Collaborators default to the firebase CLI, git and real subprocesses;
    tests pass in-memory replacements.
    """
    provider = provider or create_hosting_provider(settings)
    cwd = settings.workspace_root
    vcs = vcs or GitVCS(cwd=cwd, timeout_s=settings.vcs_timeout_s, runner=runner)
    run_dir = settings.run_temp_dir
    reclaimer = build_reclaimer(settings, provider)

    auth_gate = auth_gate or AuthGate(
        {
            "hosting": FirebaseAuthProvider(cwd=cwd, timeout_s=settings.auth_timeout_s, runner=runner),
            "vcs": GitAuthProvider(cwd=cwd, timeout_s=settings.auth_timeout_s, runner=runner),
        },
        max_attempts=settings.auth_max_attempts,
        backoff_s=settings.auth_backoff_s,
        network_backoff_s=settings.auth_network_backoff_s,
        sleep=sleep,
    )
    cache = JsonCacheStore(settings.cache_root, ttl_s=settings.cache_ttl_s) if settings.cache_enabled else None
    cache_inputs = [cwd / p for p in settings.cache_validation_inputs_list]
    quality_gate = QualityGate(
        runner=runner,
        continue_on_failure=settings.quality_continue_on_failure,
        halt_on_failure=settings.quality_halt_on_failure,
        cache=cache,
        cache_inputs=cache_inputs,
        workspace=cwd,
    )
    coordinator = BuildCoordinator(
        runner=runner,
        timeout_s=settings.build_timeout_s,
        cwd=cwd,
        cache=cache,
        cache_inputs=[p for p in cache_inputs if p != cwd / settings.packages_root],
    )
    manager = DeploymentManager(
        provider,
        vcs,
        reclaimer,
        run_dir=run_dir,
        logs_dir=settings.run_logs_dir,
        dry_run=settings.dry_run,
        sleep=sleep,
    )

    async def setup(context: RunContext) -> None:
        start = time.monotonic()
        kwargs = {"which": which} if which is not None else {}
        check_dependencies(settings.required_binaries_list, **kwargs)
        context.record_step(
            "dependencies", PhaseName.SETUP, True, int((time.monotonic() - start) * 1000)
        )

        result = await auth_gate.verify(AuthRequirements(), context)
        if not result.success:
            failed = ", ".join(s.service for s in result.failed_services)
            raise AuthenticationError(
                f"Authentication failed for: {failed}",
                step="auth",
                suggestion=result.remediation,
            )

    async def validation(context: RunContext) -> None:
        report = await quality_gate.run_checks(default_checks(settings, runner), context)
        quality_gate.raise_for_blocking(report)

    async def build(context: RunContext) -> None:
        report = await coordinator.build(packages_from_settings(settings), context)
        if not report.success:
            raise BuildError(
                f"Build failed for: {', '.join(report.failed_packages) or 'no packages'}",
                step="build",
            )

    async def deploy(context: RunContext) -> None:
        result = await manager.deploy(artifacts_from_settings(settings), context)
        if result.success:
            return
        error_cls = QuotaExceededError if result.quota_exceeded else DeploymentError
        raise error_cls(result.error or "Deploy failed", step="deploy", suggestion=result.guidance)

    async def cleanup(context: RunContext) -> None:
        summary = await reclaimer.reclaim(
            settings.hosting_sites_list,
            keep_count=settings.channel_keep_count,
            threshold=settings.channel_cleanup_threshold,
            context=context,
            phase=PhaseName.CLEANUP,
            protect=[context.channel_id] if context.channel_id else (),
        )
        context.cleanup_summary = summary
        unreachable = [site for site, r in summary.sites.items() if r.error]
        if unreachable:
            raise WorkflowError(
                f"Channel cleanup could not reach: {', '.join(unreachable)}",
                step="cleanup",
                suggestion="previewflow cleanup",
            )

    phases = [
        PhaseSpec(PhaseName.SETUP, setup, skip=settings.skip_auth),
        PhaseSpec(PhaseName.VALIDATION, validation, skip=settings.skip_quality),
        PhaseSpec(PhaseName.BUILD, build, skip=settings.skip_build),
        PhaseSpec(PhaseName.DEPLOY, deploy, skip=settings.skip_deploy),
        PhaseSpec(PhaseName.CLEANUP, cleanup, critical=False, skip=settings.skip_cleanup),
    ]

    if sinks is None:
        sinks = [LoggingEventSink(), JsonlEventSink(layout.events_path(run_dir))]

    return PipelineRunner(
        phases,
        report_generator=MarkdownReportGenerator(run_dir),
        publisher=EventPublisher(sinks),
        skip_report=settings.skip_report,
        options=settings.phase_options(),
    )


async def run_pipeline(settings: Settings, **collaborators: object) -> RunContext:
    """Clear the run dir, build the runner and execute one run."""
    layout.prepare_run_dir(settings.run_temp_dir)
    runner = build_runner(settings, **collaborators)  # type: ignore[arg-type]
    return await runner.run()

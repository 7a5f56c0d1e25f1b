# src/build/coordinator.py — v1
"""Concurrent package builds with output verification and metrics.

Every output directory is cleaned before any build starts. Builds then run
concurrently; a failing package never cancels its siblings. Exit code 0 is
not enough: the output directory must exist, be non-empty and contain the
key files (index.html, assets) before a build counts as successful.

With a cache store, a package whose sources, build command and shared
inputs fingerprint the same as its last successful build is not rebuilt
as long as its previous output still verifies; its output is then left
in place instead of being cleaned.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from pathlib import Path
from typing import Sequence

from previewflow.build.models import BuildReport, PackageBuildResult, PackageSpec
from previewflow.cache.fingerprint import DEFAULT_IGNORE, compute_fingerprint
from previewflow.cache.json_store import JsonCacheStore
from previewflow.config.settings import Settings
from previewflow.core.commands import CommandRunner, run_command
from previewflow.core.models import PhaseName
from previewflow.logging.context import step_context
from previewflow.pipeline.state import RunContext

logger = logging.getLogger(__name__)

PHASE = PhaseName.BUILD
MAX_BUILD_WARNINGS = 5


def packages_from_settings(settings: Settings) -> list[PackageSpec]:
    """PackageSpecs for every configured package."""
    specs = []
    for name in settings.packages_list:
        path = settings.workspace_root / settings.packages_root / name
        specs.append(PackageSpec(
            name=name,
            path=path,
            command=settings.build_command.format(package=name),
            output_dir=path / settings.package_output_dir,
            key_files=settings.build_key_files_list,
        ))
    return specs


def measure_output(output_dir: Path) -> tuple[int, int]:
    """(file_count, total_size_bytes) of every file under output_dir."""
    files = [p for p in output_dir.rglob("*") if p.is_file()]
    return len(files), sum(p.stat().st_size for p in files)


def verify_output(output_dir: Path, key_files: Sequence[str]) -> list[str]:
    """Problems with a build output directory; empty when it looks deployable."""
    if not output_dir.is_dir():
        return [f"output directory {output_dir} does not exist"]
    if not any(output_dir.iterdir()):
        return [f"output directory {output_dir} is empty"]
    return [f"missing {name} in {output_dir}" for name in key_files if not (output_dir / name).exists()]


class BuildCoordinator:
    """Build packages concurrently and verify what they produce.

    Args:
        runner: Command runner (injectable for tests).
        timeout_s: Per-package build timeout.
        cwd: Directory build commands run in (workspace root).
        cache: Store for successful builds; None always rebuilds.
        cache_inputs: Workspace-level files every build depends on.
    """

    def __init__(
        self,
        runner: CommandRunner = run_command,
        timeout_s: float = 300.0,
        cwd: Path | None = None,
        cache: JsonCacheStore | None = None,
        cache_inputs: Sequence[Path] = (),
    ) -> None:
        self._runner = runner
        self._timeout_s = timeout_s
        self._cwd = cwd
        self._cache = cache
        self._cache_inputs = list(cache_inputs)

    async def build(
        self,
        packages: Sequence[PackageSpec],
        context: RunContext | None = None,
    ) -> BuildReport:
        """Build every package; the report holds one result per package."""
        start = time.monotonic()
        fingerprints: dict[str, str] = {}
        reused: dict[str, PackageBuildResult] = {}
        if self._cache is not None:
            for spec in packages:
                fingerprints[spec.name] = self._fingerprint(spec)
                hit = await self._cached_result(spec, fingerprints[spec.name])
                if hit is not None:
                    reused[spec.name] = hit

        pending = [spec for spec in packages if spec.name not in reused]
        for spec in pending:
            self._clean(spec, context)

        outcomes = await asyncio.gather(
            *(self._build_one(spec) for spec in pending), return_exceptions=True
        )
        wall_ms = int((time.monotonic() - start) * 1000)

        built: dict[str, PackageBuildResult] = {}
        for spec, outcome in zip(pending, outcomes):
            if isinstance(outcome, BaseException):
                outcome = PackageBuildResult(
                    package_name=spec.name, success=False, error=f"build crashed: {outcome}"
                )
            built[spec.name] = outcome
            if self._cache is not None and outcome.success:
                await self._cache.put(
                    _cache_key(spec), fingerprints[spec.name], outcome.model_dump(mode="json")
                )

        results = {spec.name: reused.get(spec.name) or built[spec.name] for spec in packages}

        report = _aggregate(results, wall_ms)
        if context is not None:
            _record(context, report)

        logger.info(
            "Built %d/%d package(s) in %dms (%d files, %d bytes)",
            sum(1 for r in results.values() if r.success), len(results),
            wall_ms, report.total_file_count, report.total_size_bytes,
        )
        return report

    def _fingerprint(self, spec: PackageSpec) -> str:
        return compute_fingerprint(
            _cache_key(spec),
            [spec.path, *self._cache_inputs],
            root=self._cwd,
            extra=[spec.command, *spec.key_files],
            ignore=DEFAULT_IGNORE | {spec.output_dir.name},
        )

    async def _cached_result(self, spec: PackageSpec, fingerprint: str) -> PackageBuildResult | None:
        if await self._cache.lookup(_cache_key(spec), fingerprint) is None:
            return None
        problems = verify_output(spec.output_dir, spec.key_files)
        if problems:
            logger.info("Cached build of %s unusable: %s", spec.name, "; ".join(problems))
            return None
        file_count, total_size = measure_output(spec.output_dir)
        return PackageBuildResult(
            package_name=spec.name,
            success=True,
            file_count=file_count,
            total_size_bytes=total_size,
            cached=True,
        )

    def _clean(self, spec: PackageSpec, context: RunContext | None) -> None:
        if not spec.output_dir.exists():
            return
        try:
            shutil.rmtree(spec.output_dir)
            logger.debug("Cleaned %s", spec.output_dir)
        except OSError as e:
            logger.warning("Could not clean %s: %s", spec.output_dir, e)
            if context is not None:
                context.record_warning(
                    f"Could not clean {spec.output_dir}: {e}", PHASE, f"build:{spec.name}"
                )

    async def _build_one(self, spec: PackageSpec) -> PackageBuildResult:
        with step_context(f"build:{spec.name}"):
            logger.info("Building %s", spec.name)
            result = await self._runner(spec.command, cwd=self._cwd, timeout_s=self._timeout_s)
        warnings = [
            line.strip() for line in result.output.splitlines() if "warn" in line.lower()
        ][:MAX_BUILD_WARNINGS]

        if not result.success:
            error = result.error or f"build exited with code {result.exit_code}"
            return PackageBuildResult(
                package_name=spec.name,
                success=False,
                duration_ms=result.duration_ms,
                warnings=warnings,
                error=error,
            )

        problems = verify_output(spec.output_dir, spec.key_files)
        if problems:
            return PackageBuildResult(
                package_name=spec.name,
                success=False,
                duration_ms=result.duration_ms,
                warnings=warnings,
                error="; ".join(problems),
            )

        file_count, total_size = measure_output(spec.output_dir)
        return PackageBuildResult(
            package_name=spec.name,
            success=True,
            duration_ms=result.duration_ms,
            file_count=file_count,
            total_size_bytes=total_size,
            warnings=warnings,
        )


def _cache_key(spec: PackageSpec) -> str:
    return f"build:{spec.name}"


def _aggregate(results: dict[str, PackageBuildResult], wall_ms: int) -> BuildReport:
    count = len(results)
    succeeded = [r for r in results.values() if r.success]
    return BuildReport(
        results=results,
        success=count > 0 and len(succeeded) == count,
        total_duration_ms=wall_ms,
        mean_duration_ms=(sum(r.duration_ms for r in results.values()) / count) if count else 0.0,
        success_rate=(len(succeeded) / count) if count else 0.0,
        total_size_bytes=sum(r.total_size_bytes for r in succeeded),
        total_file_count=sum(r.file_count for r in succeeded),
    )


def _record(context: RunContext, report: BuildReport) -> None:
    for name, result in report.results.items():
        context.package_results[name] = result
        context.record_step(f"build:{name}", PHASE, result.success, result.duration_ms, result.error)
        if result.cached:
            context.record_warning(
                f"Sources of {name} unchanged; reused existing build output",
                PHASE, f"build:{name}", severity="info",
            )
        for warning in result.warnings:
            context.record_warning(warning, PHASE, f"build:{name}")

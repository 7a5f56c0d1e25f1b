# src/reporting/markdown_report.py — v1
"""Default report: Markdown dashboard plus JSON snapshots.

Writes under the run temp dir:
    dashboard.md         human-readable summary
    run-context.json     full RunContext snapshot
    checks/<name>.json   one fragment per quality check
"""

from __future__ import annotations

import logging
from pathlib import Path

from previewflow.pipeline.state import RunContext
from previewflow.reporting.base_report import BaseReportGenerator, ReportArtifact
from previewflow.storage import layout

logger = logging.getLogger(__name__)

_STATUS_ICON = {
    "succeeded": "✅",
    "failed": "❌",
    "skipped": "⏭️",
    "running": "⏳",
    "pending": "·",
}


class MarkdownReportGenerator(BaseReportGenerator):
    """Render the dashboard and snapshots into run_dir."""

    def __init__(self, run_dir: Path) -> None:
        self._run_dir = run_dir

    def generate(self, context: RunContext) -> ReportArtifact:
        try:
            return self._generate(context)
        except Exception as e:
            logger.exception("Report generation failed, writing fallback dashboard")
            return self._fallback(context, e)

    def _generate(self, context: RunContext) -> ReportArtifact:
        self._run_dir.mkdir(parents=True, exist_ok=True)
        files: list[Path] = []

        snapshot = layout.run_context_path(self._run_dir)
        snapshot.write_text(context.model_dump_json(indent=2), encoding="utf-8")
        files.append(snapshot)

        if context.check_results:
            layout.checks_dir(self._run_dir).mkdir(parents=True, exist_ok=True)
        for name, result in context.check_results.items():
            path = layout.check_result_path(self._run_dir, name)
            path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
            files.append(path)

        dashboard = layout.dashboard_path(self._run_dir)
        dashboard.write_text(render_dashboard(context), encoding="utf-8")
        files.insert(0, dashboard)

        logger.info("Report written to %s", dashboard)
        return ReportArtifact(path=dashboard, files=files)

    def _fallback(self, context: RunContext, error: Exception) -> ReportArtifact:
        lines = [
            "# Preview Deployment Report (fallback)",
            "",
            f"Report generation failed: `{error}`",
            "",
            f"- Run: `{context.run_id}`",
            f"- Status: **{context.status.value}**",
        ]
        if context.preview_urls is not None:
            lines += ["", "## Preview URLs", ""]
            lines += [f"- {role}: {url}" for role, url in context.preview_urls.urls.items()]
            lines += [f"- {url}" for url in context.preview_urls.generic]

        path = layout.dashboard_path(self._run_dir)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as e:
            logger.error("Fallback dashboard could not be written: %s", e)
            return ReportArtifact(fallback=True, error=f"{error}; {e}")
        return ReportArtifact(path=path, files=[path], fallback=True, error=str(error))


def render_dashboard(context: RunContext) -> str:
    """Markdown dashboard for a run."""
    lines: list[str] = [
        "# Preview Deployment Report",
        "",
        f"- Run: `{context.run_id}`",
        f"- Status: **{context.status.value}**",
        f"- Started: {context.started_at.isoformat()}",
        f"- Duration: {context.duration_ms / 1000:.1f}s",
    ]
    if context.channel_id:
        lines.append(f"- Channel: `{context.channel_id}`")

    if context.halt is not None:
        lines += [
            "",
            "## Halted",
            "",
            f"Phase `{context.halt.phase}` stopped the run ({context.halt.error_type}): "
            f"{context.halt.message}",
        ]
        if context.halt.next_action:
            lines += ["", f"Next step: `{context.halt.next_action}`"]

    urls = context.preview_urls
    if urls is not None and not urls.empty:
        lines += ["", "## Preview URLs", ""]
        if urls.is_fallback:
            lines += ["_Recovered from recent logs; may belong to an earlier deploy._", ""]
        lines += [f"- **{role}**: {url}" for role, url in urls.urls.items()]
        lines += [f"- {url}" for url in urls.generic]

    lines += ["", "## Phases", "", "| Phase | Status | Duration | Steps ok | Steps failed |",
              "|---|---|---|---|---|"]
    for phase in context.phases:
        icon = _STATUS_ICON.get(phase.status.value, "")
        lines.append(
            f"| {phase.name.value} | {icon} {phase.status.value} | {phase.duration_ms}ms "
            f"| {phase.succeeded_steps} | {phase.failed_steps} |"
        )

    if context.check_results:
        lines += ["", "## Quality Checks", "", "| Check | Result | Duration | Auto-fix |",
                  "|---|---|---|---|"]
        for name, result in context.check_results.items():
            fix = "-"
            if result.recovery_attempted:
                fix = "ok" if result.recovery_success else "failed"
            lines.append(
                f"| {name} | {_verdict(result.passed, 'pass', result.cached)} | {result.duration_ms}ms | {fix} |"
            )

    if context.package_results:
        lines += ["", "## Builds", "", "| Package | Result | Duration | Files | Size |",
                  "|---|---|---|---|---|"]
        for name, result in context.package_results.items():
            lines.append(
                f"| {name} | {_verdict(result.success, 'ok', result.cached)} | {result.duration_ms}ms "
                f"| {result.file_count} | {_human_size(result.total_size_bytes)} |"
            )

    summary = context.cleanup_summary
    if summary is not None:
        lines += [
            "",
            "## Channel Cleanup",
            "",
            f"Mode {summary.mode}, keep {summary.keep_count}: "
            f"{summary.total_deleted} deleted, {summary.total_failed} failed.",
        ]
        for site, result in summary.sites.items():
            note = result.error or result.skip_reason or f"{result.remaining} remaining"
            lines.append(f"- `{site}`: {len(result.deleted)} deleted, {note}")

    counts = context.category_counts()
    if context.warnings:
        lines += ["", "## Warnings", "", "| Phase | Info | Warning | Error |", "|---|---|---|---|"]
        for phase, c in counts.items():
            lines.append(f"| {phase} | {c['info']} | {c['warning']} | {c['error']} |")
        lines.append("")
        for w in context.warnings:
            where = f"{w.phase}/{w.step}" if w.step else w.phase
            lines.append(f"- [{w.severity}] {where}: {w.message}")

    return "\n".join(lines) + "\n"


def _verdict(ok: bool, label: str, cached: bool) -> str:
    if not ok:
        return "FAIL"
    return f"{label} (cached)" if cached else label


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}GB"

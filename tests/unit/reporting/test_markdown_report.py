# tests/unit/reporting/test_markdown_report.py — v1
"""Tests for reporting/markdown_report.py — dashboard and fallback."""

from __future__ import annotations

import json
from unittest.mock import patch

from previewflow.build.models import PackageBuildResult
from previewflow.channels.models import ReclaimSummary, SiteReclaimResult
from previewflow.core.models import HaltInfo, PhaseName
from previewflow.deploy.models import PreviewUrls
from previewflow.pipeline.state import RunContext
from previewflow.quality.models import CheckResult
from previewflow.reporting.markdown_report import MarkdownReportGenerator, render_dashboard


def _populated_context() -> RunContext:
    context = RunContext(channel_id="feature-login-1700000000")
    context.start_phase(PhaseName.SETUP)
    context.complete_phase(PhaseName.SETUP, 120)
    context.check_results["lint"] = CheckResult(
        name="lint", passed=False, recovery_attempted=True, recovery_success=True
    )
    context.package_results["admin"] = PackageBuildResult(
        package_name="admin", success=True, file_count=5, total_size_bytes=1_048_576
    )
    context.preview_urls = PreviewUrls(urls={"admin": "https://admin-site--c.web.app"})
    context.cleanup_summary = ReclaimSummary(
        keep_count=5,
        sites={"admin-site": SiteReclaimResult(site="admin-site", found=7, deleted=["a", "b"])},
    )
    context.record_warning("Quality check 'lint' failed", PhaseName.VALIDATION, "check:lint")
    context.finish()
    return context


class TestRenderDashboard:
    def test_sections(self):
        text = render_dashboard(_populated_context())
        assert "# Preview Deployment Report" in text
        assert "- Channel: `feature-login-1700000000`" in text
        assert "- **admin**: https://admin-site--c.web.app" in text
        assert "| setup | ✅ succeeded | 120ms | 0 | 0 |" in text
        assert "| lint | FAIL | 0ms | ok |" in text
        assert "| admin | ok | 0ms | 5 | 1.0MB |" in text
        assert "- `admin-site`: 2 deleted, 5 remaining" in text
        assert "| validation | 0 | 1 | 0 |" in text

    def test_cached_results_labelled(self):
        context = RunContext()
        context.check_results["test"] = CheckResult(name="test", passed=True, cached=True)
        context.package_results["hours"] = PackageBuildResult(
            package_name="hours", success=True, file_count=2, total_size_bytes=10, cached=True
        )
        context.finish()
        text = render_dashboard(context)
        assert "| test | pass (cached) | 0ms | - |" in text
        assert "| hours | ok (cached) | 0ms | 2 | 10B |" in text

    def test_halt_shows_next_step(self):
        context = RunContext()
        context.mark_halted(HaltInfo(
            phase="build", error_type="BuildError", message="admin failed",
            next_action="pnpm install && pnpm run build",
        ))
        text = render_dashboard(context)
        assert "## Halted" in text
        assert "Next step: `pnpm install && pnpm run build`" in text

    def test_fallback_urls_flagged(self):
        context = RunContext()
        context.preview_urls = PreviewUrls(urls={"admin": "https://a--c.web.app"}, is_fallback=True)
        assert "Recovered from recent logs" in render_dashboard(context)


class TestGenerator:
    def test_writes_files(self, tmp_path):
        artifact = MarkdownReportGenerator(tmp_path).generate(_populated_context())

        assert artifact.success
        assert artifact.path == tmp_path / "dashboard.md"
        assert (tmp_path / "checks" / "lint.json").exists()
        snapshot = json.loads((tmp_path / "run-context.json").read_text())
        assert snapshot["channel_id"] == "feature-login-1700000000"
        assert snapshot["status"] == "succeeded"

    def test_fallback_on_render_failure(self, tmp_path):
        context = _populated_context()
        with patch(
            "previewflow.reporting.markdown_report.render_dashboard",
            side_effect=RuntimeError("template broke"),
        ):
            artifact = MarkdownReportGenerator(tmp_path).generate(context)

        assert artifact.fallback
        assert not artifact.success
        assert artifact.error == "template broke"
        text = (tmp_path / "dashboard.md").read_text()
        assert "(fallback)" in text
        assert "https://admin-site--c.web.app" in text

# tests/unit/quality/test_checks.py — v1
"""Tests for quality/checks.py — default checks from settings."""

from __future__ import annotations

import pytest

from previewflow.config.settings import Settings
from previewflow.quality.checks import default_checks
from previewflow.quality.gate import QualityGate


class TestDefaultChecks:
    def test_three_default_checks(self, settings):
        checks = default_checks(settings)
        assert [c.name for c in checks] == ["lint", "typecheck", "test"]
        assert [c.parallel_safe for c in checks] == [False, True, False]
        assert all(c.timeout_s == settings.check_timeout_s for c in checks)
        assert checks[0].on_failure is not None

    def test_required_checks_from_settings(self, tmp_path):
        settings = Settings(_env_file=None, workspace_root=tmp_path, quality_required_checks="test")
        checks = {c.name: c for c in default_checks(settings)}
        assert checks["test"].required
        assert not checks["lint"].required

    def test_empty_command_dropped(self, tmp_path):
        settings = Settings(_env_file=None, workspace_root=tmp_path, quality_typecheck_command="")
        assert [c.name for c in default_checks(settings)] == ["lint", "test"]

    @pytest.mark.asyncio
    async def test_lint_failure_runs_lint_fix(self, settings, fake_runner):
        fake_runner.on("pnpm run lint", exit_code=1, stdout="2 errors")
        fake_runner.on("pnpm run lint:fix", exit_code=0)
        checks = default_checks(settings, fake_runner)
        report = await QualityGate(runner=fake_runner).run_checks(checks)

        assert fake_runner.count("pnpm run lint:fix") == 1
        assert report.results["lint"].recovery_success is True
        assert "test" not in report.results


class TestExtraChecks:
    def _settings(self, tmp_path, **overrides):
        return Settings(
            _env_file=None,
            workspace_root=tmp_path,
            quality_extra_checks=[
                {"name": "bundle-size", "command": "pnpm run size"},
                {"name": "dead-code", "command": "pnpm run knip", "required": True},
                {"name": "workflow", "command": "pnpm run workflow:validate", "parallel_safe": False},
            ],
            **overrides,
        )

    def test_appended_after_builtins(self, tmp_path):
        checks = default_checks(self._settings(tmp_path))
        assert [c.name for c in checks] == [
            "lint", "typecheck", "test", "bundle-size", "dead-code", "workflow",
        ]
        by_name = {c.name: c for c in checks}
        assert by_name["bundle-size"].parallel_safe
        assert not by_name["workflow"].parallel_safe
        assert by_name["dead-code"].required
        assert by_name["bundle-size"].cwd == tmp_path
        assert by_name["bundle-size"].timeout_s == 180.0

    def test_required_list_applies_to_extras(self, tmp_path):
        checks = {c.name: c for c in default_checks(self._settings(tmp_path, quality_required_checks="bundle-size"))}
        assert checks["bundle-size"].required

    @pytest.mark.asyncio
    async def test_required_extra_failure_blocks(self, tmp_path, fake_runner):
        fake_runner.on("pnpm run knip", exit_code=1, stdout="12 unused exports")
        gate = QualityGate(runner=fake_runner, continue_on_failure=True)
        report = await gate.run_checks(default_checks(self._settings(tmp_path), fake_runner))

        assert fake_runner.count("pnpm run size") == 1
        assert report.blocking == ["dead-code"]
        assert report.results["bundle-size"].parallel

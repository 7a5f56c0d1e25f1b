# tests/integration/test_int_pipeline.py — v1
"""End-to-end pipeline runs with in-memory collaborators.

Every phase runs for real (dependency check, auth gate, quality gate, build
coordinator, deployment manager, reclaimer, markdown report) against a fake
hosting provider and a scripted command runner.
"""

from __future__ import annotations

import json

import pytest

from previewflow.auth.gate import AuthGate
from previewflow.auth.models import AuthStatus
from previewflow.auth.providers import BaseAuthProvider
from previewflow.core.models import PhaseName, PhaseStatus, RunStatus
from previewflow.hosting.models import Channel, ProviderDeployResponse
from previewflow.pipeline.factory import run_pipeline

pytestmark = pytest.mark.integration

BUILD_FILES = [("index.html", 512), ("assets/app.js", 4096), ("assets/app.css", 1024)]


class StaticAuthProvider(BaseAuthProvider):
    def __init__(self, service: str, authenticated: bool = True):
        self.service = service
        self.remediation = "firebase login --reauth"
        self._authenticated = authenticated

    async def check(self) -> AuthStatus:
        return AuthStatus(
            service=self.service,
            authenticated=self._authenticated,
            error=None if self._authenticated else "not logged in",
            recoverable=False,
            remediation=self.remediation,
        )


def _auth_gate(no_sleep, hosting_ok: bool = True) -> AuthGate:
    return AuthGate(
        {"hosting": StaticAuthProvider("hosting", hosting_ok), "vcs": StaticAuthProvider("vcs")},
        sleep=no_sleep,
    )


@pytest.fixture
def workspace(settings, fake_runner, build_output_writer):
    """Builds write their output into packages/<name>/dist."""
    for name in settings.packages_list:
        output_dir = settings.workspace_root / "packages" / name / "dist"
        fake_runner.on(
            f"pnpm --filter {name} run build",
            side_effect=lambda args, d=output_dir: build_output_writer(d, BUILD_FILES),
        )
    return settings


@pytest.fixture
def provider(fake_provider, channel_factory):
    fake_provider.channels["admin-site"] = [
        Channel(id="live", site="admin-site"),
        *channel_factory("admin-site", 8),
    ]
    fake_provider.channels["hours-site"] = channel_factory("hours-site", 2)
    return fake_provider


async def _run(settings, provider, fake_vcs, fake_runner, no_sleep, hosting_ok=True):
    return await run_pipeline(
        settings,
        provider=provider,
        vcs=fake_vcs,
        auth_gate=_auth_gate(no_sleep, hosting_ok),
        runner=fake_runner,
        sleep=no_sleep,
        which=lambda name: f"/usr/bin/{name}",
    )


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_full_run(self, workspace, provider, fake_vcs, fake_runner, no_sleep):
        fake_vcs.pr_number = 42
        context = await _run(workspace, provider, fake_vcs, fake_runner, no_sleep)

        assert context.status is RunStatus.SUCCEEDED
        assert context.halt is None
        assert all(p.status is PhaseStatus.SUCCEEDED for p in context.phases)

        assert context.channel_id == "pr-42"
        assert context.preview_urls.urls == {
            "admin": "https://admin-site--pr-42.web.app",
            "hours": "https://hours-site--pr-42.web.app",
        }
        assert [c[1] for c in provider.deploy_calls] == ["pr-42", "pr-42"]
        assert provider.deploy_calls[0][3] == "Add login page"

        assert context.cleanup_summary.sites["admin-site"].deleted == ["ch-5", "ch-6", "ch-7"]
        assert context.cleanup_summary.sites["hours-site"].skipped
        assert "live" in [c.id for c in provider.channels["admin-site"]]

        assert set(context.check_results) == {"lint", "typecheck", "test"}
        assert context.package_results["admin"].file_count == 3

        run_dir = workspace.run_temp_dir
        assert (run_dir / "dashboard.md").exists()
        assert (run_dir / "deploy.log").exists()
        assert json.loads((run_dir / "preview-urls.json").read_text())["channel_id"] == "pr-42"
        assert (workspace.run_logs_dir / "preview-pr-42.log").exists()
        events = [json.loads(line)["type"] for line in (run_dir / "events.jsonl").read_text().splitlines()]
        assert events[0] == "run_started"
        assert events[-1] == "run_finished"

    @pytest.mark.asyncio
    async def test_cleanup_keeps_redeployed_channel(self, workspace, provider, fake_vcs, fake_runner, no_sleep):
        fake_vcs.pr_number = 42
        oldest = provider.channels["admin-site"][-1]
        provider.channels["admin-site"].append(oldest.model_copy(update={"id": "pr-42"}))
        context = await _run(workspace, provider, fake_vcs, fake_runner, no_sleep)

        assert context.status is RunStatus.SUCCEEDED
        assert "pr-42" in [c.id for c in provider.channels["admin-site"]]
        result = context.cleanup_summary.sites["admin-site"]
        assert "pr-42" in result.kept
        assert sorted(result.deleted) == ["ch-5", "ch-6", "ch-7"]

    @pytest.mark.asyncio
    async def test_quota_recovery(self, workspace, provider, fake_vcs, fake_runner, no_sleep):
        fake_vcs.pr_number = 7
        provider.deploy_responses = [
            ProviderDeployResponse(
                success=False, raw_output="Error: HTTP Error: 429, quota", error_code=429
            ),
            ProviderDeployResponse(
                success=True,
                raw_output="Channel URL (admin-site): https://admin-site--pr-7.web.app\n"
                           "Channel URL (hours-site): https://hours-site--pr-7.web.app",
            ),
        ]
        context = await _run(workspace, provider, fake_vcs, fake_runner, no_sleep)

        assert context.status is RunStatus.SUCCEEDED
        assert len(provider.channels["admin-site"]) == 4  # live + 3 kept
        assert any("Channel quota exceeded; reclaimed 5" in w.message for w in context.warnings)
        assert context.phase(PhaseName.DEPLOY).steps["deploy:admin-site"].success
        assert context.cleanup_summary.sites["admin-site"].skipped


class TestCache:
    @pytest.mark.asyncio
    async def test_second_run_reuses_validation_and_builds(
        self, workspace, provider, fake_vcs, fake_runner, no_sleep
    ):
        settings = workspace.model_copy(update={"cache_enabled": True})
        first = await _run(settings, provider, fake_vcs, fake_runner, no_sleep)
        second = await _run(settings, provider, fake_vcs, fake_runner, no_sleep)

        assert first.status is RunStatus.SUCCEEDED
        assert second.status is RunStatus.SUCCEEDED
        assert fake_runner.count("pnpm run lint") == 1
        assert fake_runner.count("pnpm --filter admin run build") == 1
        assert all(r.cached for r in second.check_results.values())
        assert all(r.cached for r in second.package_results.values())
        assert len(provider.deploy_calls) == 4


class TestHalts:
    @pytest.mark.asyncio
    async def test_build_failure_halts_before_deploy(
        self, workspace, provider, fake_vcs, fake_runner, no_sleep
    ):
        fake_runner.on("pnpm --filter hours run build", exit_code=1, stderr="Cannot find module")
        context = await _run(workspace, provider, fake_vcs, fake_runner, no_sleep)

        assert context.status is RunStatus.FAILED
        assert context.halt.phase == "build"
        assert context.halt.next_action == "pnpm install && pnpm run build"
        assert context.phase(PhaseName.BUILD).status is PhaseStatus.FAILED
        assert context.phase(PhaseName.DEPLOY).status is PhaseStatus.PENDING
        assert context.phase(PhaseName.CLEANUP).status is PhaseStatus.PENDING
        assert provider.deploy_calls == []
        assert provider.delete_calls == []
        assert context.package_results["admin"].success
        assert (workspace.run_temp_dir / "dashboard.md").exists()

    @pytest.mark.asyncio
    async def test_auth_failure_halts_setup(
        self, workspace, provider, fake_vcs, fake_runner, no_sleep
    ):
        context = await _run(workspace, provider, fake_vcs, fake_runner, no_sleep, hosting_ok=False)

        assert context.halt.phase == "setup"
        assert context.halt.error_type == "AuthenticationError"
        assert context.halt.next_action == "firebase login --reauth"
        assert fake_runner.calls == []
        assert context.phase(PhaseName.VALIDATION).status is PhaseStatus.PENDING

    @pytest.mark.asyncio
    async def test_soft_quality_failure_does_not_halt(
        self, workspace, provider, fake_vcs, fake_runner, no_sleep
    ):
        fake_runner.on("pnpm run test", exit_code=1, stdout="Tests: 1 failed")
        context = await _run(workspace, provider, fake_vcs, fake_runner, no_sleep)

        assert context.status is RunStatus.SUCCEEDED
        assert not context.check_results["test"].passed
        assert context.phase(PhaseName.VALIDATION).status is PhaseStatus.SUCCEEDED
        assert context.preview_urls is not None

# tests/unit/deploy/test_manager.py — v1
"""Tests for deploy/manager.py — deploys, quota recovery, URL resolution."""

from __future__ import annotations

import json
import re

import pytest

from previewflow.channels.reclaimer import ChannelReclaimer
from previewflow.core.models import PhaseName
from previewflow.deploy.manager import DeploymentManager
from previewflow.deploy.models import DeployArtifact, DeployOutcome
from previewflow.hosting.models import ProviderDeployResponse
from previewflow.logging.context import get_context

QUOTA = ProviderDeployResponse(
    success=False, raw_output="Error: HTTP Error: 429, Channel quota reached", error_code=429
)
DEPRECATION_ONLY = ProviderDeployResponse(
    success=False,
    raw_output="(node:1) [DEP0040] DeprecationWarning: The `punycode` module is deprecated.\n"
               "Channel URL (admin-site): https://admin-site--pr-42.web.app",
)


@pytest.fixture
def artifacts(tmp_path):
    paths = {}
    for role in ("admin", "hours"):
        paths[role] = tmp_path / "packages" / role / "dist"
        paths[role].mkdir(parents=True)
    return [
        DeployArtifact(site="admin-site", role="admin", path=paths["admin"]),
        DeployArtifact(site="hours-site", role="hours", path=paths["hours"]),
    ]


@pytest.fixture
def vcs(fake_vcs):
    fake_vcs.pr_number = 42
    return fake_vcs


def _manager(tmp_path, provider, vcs, no_sleep, reclaimer="default", dry_run=False):
    if reclaimer == "default":
        reclaimer = ChannelReclaimer(provider, aggressive_keep_count=3)
    return DeploymentManager(
        provider,
        vcs,
        reclaimer,
        run_dir=tmp_path / "temp",
        logs_dir=tmp_path / "logs",
        dry_run=dry_run,
        sleep=no_sleep,
    )


class TestDeploy:
    @pytest.mark.asyncio
    async def test_success_extracts_role_urls(self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context):
        manager = _manager(tmp_path, fake_provider, vcs, no_sleep)
        result = await manager.deploy(artifacts, context)

        assert result.success
        assert result.channel_id == "pr-42"
        assert result.attempts == 1
        assert result.urls == {
            "admin": "https://admin-site--pr-42.web.app",
            "hours": "https://hours-site--pr-42.web.app",
        }
        assert context.channel_id == "pr-42"
        assert context.preview_urls.urls == result.urls
        assert [c[3] for c in fake_provider.deploy_calls] == ["Add login page"] * 2

        stored = json.loads((tmp_path / "temp" / "preview-urls.json").read_text())
        assert stored["channel_id"] == "pr-42"
        assert (tmp_path / "temp" / "deploy.log").exists()
        assert "ADMIN: https://admin-site--pr-42.web.app" in (
            tmp_path / "logs" / "preview-pr-42.log"
        ).read_text()

    @pytest.mark.asyncio
    async def test_quota_triggers_single_recovery(
        self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context, channel_factory
    ):
        fake_provider.channels["admin-site"] = channel_factory("admin-site", 6)
        fake_provider.deploy_responses = [QUOTA, ProviderDeployResponse(
            success=True, raw_output="ADMIN: https://admin-site--pr-42.web.app"
        )]
        manager = _manager(tmp_path, fake_provider, vcs, no_sleep)
        result = await manager.deploy(artifacts, context)

        assert result.success
        assert result.attempts == 2
        assert result.recovery_attempted
        assert len(fake_provider.channels["admin-site"]) == 3
        assert any("quota exceeded" in w.message.lower() for w in context.warnings)
        assert context.phase(PhaseName.DEPLOY).steps["deploy:admin-site"].success

    @pytest.mark.asyncio
    async def test_second_quota_error_is_terminal(
        self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context, channel_factory
    ):
        fake_provider.channels["admin-site"] = channel_factory("admin-site", 5)
        fake_provider.deploy_responses = [QUOTA]
        manager = _manager(tmp_path, fake_provider, vcs, no_sleep)
        result = await manager.deploy(artifacts, context)

        assert not result.success
        assert result.quota_exceeded
        assert result.outcome is DeployOutcome.QUOTA_EXCEEDED
        assert result.attempts == 2
        assert "cleanup --aggressive" in result.guidance
        # one recovery cycle: one aggressive pass, two deploy attempts
        assert len(fake_provider.deploy_calls) == 2
        assert len(fake_provider.delete_calls) == 2

    @pytest.mark.asyncio
    async def test_quota_without_reclaimer_fails_immediately(
        self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context
    ):
        fake_provider.deploy_responses = [QUOTA]
        manager = _manager(tmp_path, fake_provider, vcs, no_sleep, reclaimer=None)
        result = await manager.deploy(artifacts, context)
        assert result.quota_exceeded
        assert result.attempts == 1
        assert not result.recovery_attempted

    @pytest.mark.asyncio
    async def test_hard_failure_has_guidance(self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context):
        fake_provider.deploy_responses = [ProviderDeployResponse(
            success=False, raw_output="Error: Not authorized", error="Error: Not authorized"
        )]
        result = await _manager(tmp_path, fake_provider, vcs, no_sleep).deploy(artifacts, context)

        assert not result.success
        assert not result.quota_exceeded
        assert result.outcome is DeployOutcome.FAILURE
        assert "pr-42" in result.guidance
        assert len(fake_provider.deploy_calls) == 1
        assert not context.phase(PhaseName.DEPLOY).steps["deploy:admin-site"].success

    @pytest.mark.asyncio
    async def test_deprecation_noise_is_benign(self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context):
        fake_provider.deploy_responses = [DEPRECATION_ONLY]
        result = await _manager(tmp_path, fake_provider, vcs, no_sleep).deploy(artifacts, context)

        assert result.success
        assert result.outcome is DeployOutcome.BENIGN
        assert result.urls["admin"] == "https://admin-site--pr-42.web.app"
        assert any(w.severity == "info" for w in context.warnings)

    @pytest.mark.asyncio
    async def test_dry_run_skips_provider(self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context):
        result = await _manager(tmp_path, fake_provider, vcs, no_sleep, dry_run=True).deploy(
            artifacts, context
        )
        assert result.success
        assert result.channel_id == "pr-42"
        assert fake_provider.deploy_calls == []


class TestUrlFallback:
    @pytest.mark.asyncio
    async def test_recovers_urls_from_recent_logs(self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context):
        logs = tmp_path / "logs"
        logs.mkdir()
        (logs / "preview-pr-41.log").write_text(
            "ADMIN: https://admin-site--pr-41.web.app\nHOURS: https://hours-site--pr-41.web.app\n"
        )
        fake_provider.deploy_responses = [ProviderDeployResponse(success=True, raw_output="Deploy complete!")]
        result = await _manager(tmp_path, fake_provider, vcs, no_sleep).deploy(artifacts, context)

        assert result.success
        assert result.is_fallback
        assert result.urls["hours"] == "https://hours-site--pr-41.web.app"
        assert context.preview_urls.source == "log-fallback"
        assert context.preview_urls.channel_id == "pr-42"
        assert any("recovered from recent logs" in w.message for w in context.warnings)
        # fallback URLs are not written back into the persistent log
        assert not (logs / "preview-pr-42.log").exists()

    @pytest.mark.asyncio
    async def test_no_urls_anywhere_is_a_warning(self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context):
        fake_provider.deploy_responses = [ProviderDeployResponse(success=True, raw_output="done")]
        result = await _manager(tmp_path, fake_provider, vcs, no_sleep).deploy(artifacts, context)

        assert result.success
        assert result.urls == {}
        assert any("No preview URLs" in w.message for w in context.warnings)
        assert all(s.success for s in context.phase(PhaseName.DEPLOY).steps.values())

    @pytest.mark.asyncio
    async def test_url_resolved_by_site_not_channel_name(
        self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context
    ):
        hours_url = "https://hours-site--admin-fix-1700000000-ab12.web.app"
        fake_provider.deploy_responses = [
            ProviderDeployResponse(success=True, raw_output="Deploy complete!"),
            ProviderDeployResponse(success=True, raw_output=f"Channel URL (hours-site): {hours_url}"),
        ]
        result = await _manager(tmp_path, fake_provider, vcs, no_sleep).deploy(artifacts, context)

        assert result.urls == {"hours": hours_url}
        saved = json.loads((tmp_path / "temp" / "preview-urls.json").read_text())
        assert saved["urls"] == {"hours": hours_url}


class TestStepContext:
    @pytest.mark.asyncio
    async def test_provider_calls_tagged_with_step(
        self, tmp_path, fake_provider, vcs, no_sleep, artifacts, context
    ):
        seen = []
        original = fake_provider.deploy_to_channel

        async def recording(site, channel_id, path, message):
            seen.append(get_context().step)
            return await original(site, channel_id, path, message)

        fake_provider.deploy_to_channel = recording
        await _manager(tmp_path, fake_provider, vcs, no_sleep).deploy(artifacts, context)

        assert seen == ["deploy:admin-site", "deploy:hours-site"]
        assert get_context().step is None


class TestCapabilities:
    @pytest.mark.asyncio
    async def test_branch_only_vcs_uses_defaults(
        self, tmp_path, fake_provider, branch_only_vcs, no_sleep, artifacts, context
    ):
        manager = _manager(tmp_path, fake_provider, branch_only_vcs, no_sleep)
        result = await manager.deploy(artifacts, context)

        assert re.match(r"^main-\d{10}$", result.channel_id)
        assert fake_provider.deploy_calls[0][3] == "Preview deployment"

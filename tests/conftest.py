# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides an in-memory hosting provider, a fake VCS, a scriptable command
runner and isolated settings. No external dependencies: no CLI is ever
executed and no network is touched.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Sequence

import pytest

from previewflow.config.settings import Settings
from previewflow.core.commands import split_command
from previewflow.core.models import CommandResult
from previewflow.hosting.base_provider import BaseHostingProvider
from previewflow.hosting.models import (
    Channel,
    ProviderDeleteResponse,
    ProviderDeployResponse,
)
from previewflow.pipeline.state import RunContext
from previewflow.vcs.base_vcs import BaseVCS

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


# === FAKES ===


class FakeHostingProvider(BaseHostingProvider):
    """In-memory provider: channels per site, scripted deploy responses."""

    def __init__(self) -> None:
        self.channels: dict[str, list[Channel]] = {}
        self.delete_failures: set[str] = set()
        self.list_failures: set[str] = set()
        self.deploy_responses: list[ProviderDeployResponse] = []
        self.deploy_calls: list[tuple[str, str, Path, str]] = []
        self.delete_calls: list[tuple[str, str]] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    async def list_channels(self, site: str) -> list[Channel]:
        if site in self.list_failures:
            raise RuntimeError(f"cannot list {site}")
        return list(self.channels.get(site, []))

    async def deploy_to_channel(self, site, channel_id, artifact_path, message):
        self.deploy_calls.append((site, channel_id, artifact_path, message))
        if len(self.deploy_responses) > 1:
            return self.deploy_responses.pop(0)
        if self.deploy_responses:
            return self.deploy_responses[0]
        return ProviderDeployResponse(
            success=True,
            raw_output=f"Channel URL ({site}): https://{site}--{channel_id}.web.app",
        )

    async def delete_channel(self, site, channel_id):
        self.delete_calls.append((site, channel_id))
        if channel_id in self.delete_failures:
            return ProviderDeleteResponse(success=False, error="permission denied")
        self.channels[site] = [c for c in self.channels.get(site, []) if c.id != channel_id]
        return ProviderDeleteResponse(success=True)


class FakeVCS(BaseVCS):
    """Implements BaseVCS plus both optional capabilities."""

    def __init__(
        self,
        branch: str = "feature/login",
        pr_number: int | None = None,
        message: str = "Add login page",
    ) -> None:
        self.branch = branch
        self.pr_number = pr_number
        self.message = message

    async def get_current_branch(self) -> str:
        return self.branch

    async def get_latest_commit_message(self) -> str:
        return self.message

    async def get_pull_request_number(self) -> int | None:
        return self.pr_number


class BranchOnlyVCS(BaseVCS):
    """VCS without the optional capabilities."""

    async def get_current_branch(self) -> str:
        return "main"


class FakeCommandRunner:
    """Scriptable stand-in for run_command.

    Rules match on the command's prefix; the most recently added rule wins.
    A rule holding a list of results pops one per call and repeats the last.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self._rules: list[tuple[str, list[CommandResult], Callable[[list[str]], None] | None]] = []

    def on(
        self,
        prefix: str,
        *results: CommandResult,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        side_effect: Callable[[list[str]], None] | None = None,
    ) -> None:
        if not results:
            results = (CommandResult(exit_code=exit_code, stdout=stdout, stderr=stderr),)
        self._rules.insert(0, (prefix, list(results), side_effect))

    def count(self, prefix: str) -> int:
        return sum(1 for c in self.calls if c.startswith(prefix))

    async def __call__(self, command, cwd=None, timeout_s=60.0, env=None) -> CommandResult:
        args = split_command(command)
        joined = " ".join(args)
        self.calls.append(joined)
        for prefix, results, side_effect in self._rules:
            if joined.startswith(prefix):
                if side_effect is not None:
                    side_effect(args)
                result = results.pop(0) if len(results) > 1 else results[0]
                return result.model_copy(update={"args": args})
        return CommandResult(args=args, exit_code=0)


def make_channels(site: str, count: int, prefix: str = "ch") -> list[Channel]:
    """`count` channels, ch-0 newest, each one hour older than the previous."""
    return [
        Channel(
            id=f"{prefix}-{i}",
            site=site,
            created_at=BASE_TIME - timedelta(hours=i),
            url=f"https://{site}--{prefix}-{i}.web.app",
        )
        for i in range(count)
    ]


def write_build_output(root: Path, files: Sequence[tuple[str, int]]) -> None:
    """Create files of the given sizes under root."""
    for rel, size in files:
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x" * size)


# === FIXTURES ===


@pytest.fixture
def fake_provider() -> FakeHostingProvider:
    return FakeHostingProvider()


@pytest.fixture
def fake_vcs() -> FakeVCS:
    return FakeVCS()


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def channel_factory() -> Callable[..., list[Channel]]:
    return make_channels


@pytest.fixture
def build_output_writer() -> Callable[[Path, Sequence[tuple[str, int]]], None]:
    return write_build_output


@pytest.fixture
def context() -> RunContext:
    return RunContext()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from any local .env, rooted in tmp_path."""
    return Settings(
        _env_file=None,
        workspace_root=tmp_path,
        project_id="demo-project",
        hosting_sites="admin-site,hours-site",
        hosting_roles="admin,hours",
        packages="admin,hours",
    )


@pytest.fixture
def no_sleep():
    """Replacement for asyncio.sleep that records requested delays."""
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def branch_only_vcs() -> BranchOnlyVCS:
    return BranchOnlyVCS()

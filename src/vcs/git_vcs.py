# src/vcs/git_vcs.py — v1
"""Git implementation of the VCS collaborator (git CLI + CI environment)."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Mapping

from previewflow.core.commands import CommandRunner, run_command
from previewflow.vcs.base_vcs import DEFAULT_BRANCH, DEFAULT_COMMIT_MESSAGE, BaseVCS

logger = logging.getLogger(__name__)

_PR_REF_RE = re.compile(r"^refs/pull/(\d+)/")
_PR_BRANCH_RE = re.compile(r"^pr-(\d+)$")


class GitVCS(BaseVCS):
    """Read branch, commit message and PR number from git and CI variables.

    Implements CommitMessageSource and PullRequestSource. Every lookup falls
    back to a default instead of raising.
    """

    def __init__(
        self,
        cwd: Path | None = None,
        timeout_s: float = 30.0,
        environ: Mapping[str, str] | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self._cwd = cwd
        self._timeout_s = timeout_s
        self._environ = environ if environ is not None else os.environ
        self._runner = runner

    async def _git(self, *args: str) -> str | None:
        result = await self._runner(["git", *args], cwd=self._cwd, timeout_s=self._timeout_s)
        if not result.success:
            logger.debug("git %s failed: %s", " ".join(args), result.error or result.stderr.strip())
            return None
        return result.stdout.strip() or None

    async def get_current_branch(self) -> str:
        # CI checkouts of pull requests are detached; GITHUB_HEAD_REF holds the branch.
        head_ref = self._environ.get("GITHUB_HEAD_REF", "").strip()
        if head_ref:
            return head_ref
        branch = await self._git("rev-parse", "--abbrev-ref", "HEAD")
        if not branch or branch == "HEAD":
            logger.warning("Could not determine current branch, using '%s'", DEFAULT_BRANCH)
            return DEFAULT_BRANCH
        return branch

    async def get_latest_commit_message(self) -> str:
        message = await self._git("log", "-1", "--pretty=%s")
        return message or DEFAULT_COMMIT_MESSAGE

    async def get_pull_request_number(self) -> int | None:
        match = _PR_REF_RE.match(self._environ.get("GITHUB_REF", ""))
        if match:
            return int(match.group(1))

        raw = self._environ.get("PR_NUMBER", "").strip()
        if raw.isdigit():
            return int(raw)

        branch = await self.get_current_branch()
        match = _PR_BRANCH_RE.match(branch)
        if match:
            return int(match.group(1))
        return None

# src/vcs/base_vcs.py — v1
"""Version-control collaborator interface.

Only the current branch is mandatory. Commit messages and pull-request
numbers are optional capabilities expressed as runtime-checkable protocols;
consumers check them once at construction instead of probing per call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

DEFAULT_BRANCH = "unknown"
DEFAULT_COMMIT_MESSAGE = "Preview deployment"


class BaseVCS(ABC):
    """Minimal VCS contract: the branch being deployed."""

    @abstractmethod
    async def get_current_branch(self) -> str:
        """Current branch name, or DEFAULT_BRANCH when it cannot be read."""


@runtime_checkable
class CommitMessageSource(Protocol):
    async def get_latest_commit_message(self) -> str: ...


@runtime_checkable
class PullRequestSource(Protocol):
    async def get_pull_request_number(self) -> int | None: ...

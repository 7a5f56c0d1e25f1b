# src/deploy/channel_id.py — v1
"""Preview channel id generation.

Channel ids become part of the preview hostname, so they are restricted to
lowercase [a-z0-9-] and kept short.
"""

from __future__ import annotations

import re
import time

MAX_BRANCH_CHARS = 15
TIMESTAMP_DIGITS = 10
FALLBACK_SLUG = "preview"

_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")
_REPEATED_HYPHENS = re.compile(r"-{2,}")


def sanitize_branch(branch: str, max_chars: int = MAX_BRANCH_CHARS) -> str:
    """Reduce a branch name to a hostname-safe slug of at most max_chars.

    >>> sanitize_branch("Feature/X Y!")
    'feature-x-y'
    """
    slug = _INVALID_CHARS.sub("-", branch.strip().lower())
    slug = _REPEATED_HYPHENS.sub("-", slug).strip("-")
    slug = slug[:max_chars].strip("-")
    return slug or FALLBACK_SLUG


def generate_channel_id(
    branch: str,
    pr_number: int | None = None,
    now_ms: int | None = None,
) -> str:
    """Build the channel id for a deployment.

    Args:
        branch: Current branch name.
        pr_number: Pull request number; when set the id is `pr-<n>`.
        now_ms: Epoch milliseconds (defaults to the current time).

    Returns:
        `pr-<n>` or `<slug>-<first 10 digits of epoch ms>`.
    """
    if pr_number is not None:
        return f"pr-{pr_number}"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{sanitize_branch(branch)}-{str(now_ms)[:TIMESTAMP_DIGITS]}"

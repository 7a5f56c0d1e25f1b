# src/auth/dependencies.py — v1
"""Locate the external binaries a run needs before doing any work."""

from __future__ import annotations

import logging
import shutil
from typing import Callable, Sequence

from previewflow.core.errors import DependencyError

logger = logging.getLogger(__name__)

INSTALL_HINTS = {
    "firebase": "npm install -g firebase-tools",
    "pnpm": "npm install -g pnpm",
    "npm": "Install Node.js from https://nodejs.org",
    "git": "Install git from https://git-scm.com",
}


def check_dependencies(
    binaries: Sequence[str],
    which: Callable[[str], str | None] = shutil.which,
) -> dict[str, str]:
    """Resolve each binary on PATH.

    Returns:
        Binary name -> absolute path.

    Raises:
        DependencyError: One or more binaries are missing; the suggestion
            holds the install commands.
    """
    found: dict[str, str] = {}
    missing: list[str] = []
    for name in binaries:
        path = which(name)
        if path:
            found[name] = path
        else:
            missing.append(name)

    if missing:
        hints = [INSTALL_HINTS.get(name, f"Install '{name}' and add it to PATH") for name in missing]
        raise DependencyError(
            f"Required tool(s) not found on PATH: {', '.join(missing)}",
            step="dependencies",
            suggestion=" && ".join(dict.fromkeys(hints)),
        )

    logger.debug("Dependencies resolved: %s", found)
    return found

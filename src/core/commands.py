# src/core/commands.py — v1
"""Async subprocess runner for the opaque external tools.

Quality checks, builds, the hosting CLI and git all go through
run_command(). A timeout kills the process and is reported as that
command's failure only; it never raises.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import time
from pathlib import Path
from typing import Awaitable, Callable, Mapping, Sequence

from previewflow.core.models import CommandResult

logger = logging.getLogger(__name__)

MAX_STDOUT_CHARS = 20_000
MAX_STDERR_CHARS = 10_000

CommandRunner = Callable[..., Awaitable[CommandResult]]


def split_command(command: str | Sequence[str]) -> list[str]:
    """Split a configured command string into argv."""
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)


async def run_command(
    command: str | Sequence[str],
    cwd: Path | str | None = None,
    timeout_s: float = 60.0,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a command and capture its output.

    Args:
        command: argv list or a shell-style string (split with shlex).
        cwd: Working directory.
        timeout_s: Seconds before the process is killed.
        env: Extra environment variables merged over os.environ.

    Returns:
        CommandResult; missing binaries and timeouts are flagged, not raised.
    """
    args = split_command(command)
    start = time.monotonic()
    merged_env = {**os.environ, "CI": "true", **(env or {})}

    logger.debug("Running: %s", " ".join(args))
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=merged_env,
        )
    except FileNotFoundError as e:
        logger.warning("Command not found: %s", args[0] if args else "<empty>")
        return CommandResult(
            args=args,
            exit_code=127,
            missing_binary=True,
            error=f"command not found: {e.filename or args[0]}",
            duration_ms=_elapsed_ms(start),
        )
    except OSError as e:
        return CommandResult(
            args=args,
            error=str(e),
            duration_ms=_elapsed_ms(start),
        )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("Command timed out after %.0fs: %s", timeout_s, " ".join(args))
        return CommandResult(
            args=args,
            exit_code=proc.returncode,
            timed_out=True,
            error=f"timed out after {timeout_s:.0f}s",
            duration_ms=_elapsed_ms(start),
        )

    result = CommandResult(
        args=args,
        exit_code=proc.returncode,
        stdout=_decode(stdout)[:MAX_STDOUT_CHARS],
        stderr=_decode(stderr)[:MAX_STDERR_CHARS],
        duration_ms=_elapsed_ms(start),
    )
    logger.debug("Exit code %s in %dms: %s", result.exit_code, result.duration_ms, args[0])
    return result


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)

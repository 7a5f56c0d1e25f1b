# src/quality/validators.py — v1
"""Validators: the single verdict on a quality tool run.

A validator maps a CommandResult to ValidationOutcome(passed, issues).
The default requires a zero exit code AND output free of failure tokens,
ignoring zero-count summaries such as "0 errors" or "0 failed".
"""

from __future__ import annotations

import re
from typing import Callable

from previewflow.core.models import CommandResult
from previewflow.quality.models import ValidationOutcome

Validator = Callable[[CommandResult], ValidationOutcome]

MAX_ISSUES = 20

_FAILURE_TOKEN = re.compile(r"\b(failed|failures?|errors?)\b", re.IGNORECASE)
_ZERO_COUNT = re.compile(r"\b0\s+(failed|failures?|errors?)\b", re.IGNORECASE)


def exit_code_validator(result: CommandResult) -> ValidationOutcome:
    """Pass iff the command ran to completion with exit code 0."""
    if result.missing_binary:
        return ValidationOutcome(passed=False, issues=[result.error or "command not found"])
    if result.timed_out:
        return ValidationOutcome(passed=False, issues=[result.error or "timed out"])
    if result.error:
        return ValidationOutcome(passed=False, issues=[result.error])
    if result.exit_code != 0:
        return ValidationOutcome(passed=False, issues=[f"exit code {result.exit_code}"])
    return ValidationOutcome(passed=True)


def find_failure_lines(output: str, limit: int = MAX_ISSUES) -> list[str]:
    """Output lines mentioning failures, once zero-count phrases are removed."""
    lines: list[str] = []
    for line in output.splitlines():
        if _FAILURE_TOKEN.search(_ZERO_COUNT.sub("", line)):
            lines.append(line.strip())
            if len(lines) >= limit:
                break
    return lines


def token_scan_validator(result: CommandResult) -> ValidationOutcome:
    """Fail when the output reports failures, whatever the exit code."""
    issues = find_failure_lines(result.output)
    return ValidationOutcome(passed=not issues, issues=issues)


def default_validator(result: CommandResult) -> ValidationOutcome:
    """Exit code AND token scan."""
    by_exit = exit_code_validator(result)
    by_tokens = token_scan_validator(result)
    return ValidationOutcome(
        passed=by_exit.passed and by_tokens.passed,
        issues=(by_exit.issues + by_tokens.issues)[:MAX_ISSUES],
    )

# src/quality/checks.py — v1
"""Quality checks built from settings: the built-in trio plus extras."""

from __future__ import annotations

from previewflow.config.settings import Settings
from previewflow.core.commands import CommandRunner, run_command
from previewflow.quality.gate import QualityCheck
from previewflow.quality.models import CheckResult


def default_checks(settings: Settings, runner: CommandRunner = run_command) -> list[QualityCheck]:
    """lint (with auto-fix), typecheck (parallel-safe), test, then extras.

    Extra checks come from QUALITY_EXTRA_CHECKS in declaration order. A
    check is required when it is listed in QUALITY_REQUIRED_CHECKS or its
    own config says so. Checks with an empty command are left out.
    """
    required = set(settings.quality_required_checks_list)
    cwd = settings.workspace_root

    async def lint_fix(_: CheckResult) -> bool:
        result = await runner(
            settings.quality_lint_fix_command, cwd=cwd, timeout_s=settings.check_timeout_s
        )
        return result.success

    candidates = [
        QualityCheck(
            name="lint",
            command=settings.quality_lint_command,
            on_failure=lint_fix if settings.quality_lint_fix_command else None,
        ),
        QualityCheck(
            name="typecheck",
            command=settings.quality_typecheck_command,
            parallel_safe=True,
        ),
        QualityCheck(name="test", command=settings.quality_test_command),
    ]
    for extra in settings.quality_extra_checks:
        candidates.append(QualityCheck(
            name=extra.name,
            command=extra.command,
            parallel_safe=extra.parallel_safe,
            required=extra.required,
        ))

    checks = []
    for check in candidates:
        if not str(check.command).strip():
            continue
        check.required = check.required or check.name in required
        check.timeout_s = settings.check_timeout_s
        check.cwd = cwd
        checks.append(check)
    return checks

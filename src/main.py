# src/main.py — v1
"""CLI entry point — run, cleanup, channel-id, urls commands.

Usage:
    previewflow run [--skip-quality] [--dry-run] [options]
    previewflow cleanup [--aggressive] [--dry-run] [--keep-count N]
    previewflow channel-id
    previewflow urls
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from previewflow.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from previewflow.config.settings import ConfigurationError, load_settings
    from previewflow.logging.logger import setup_logging

    try:
        settings = load_settings(**_overrides(args))
    except (ConfigurationError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="previewflow",
        description=f"previewflow v{__version__} — preview channel deployment pipeline",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser("run", help="Run the full deployment pipeline")
    for phase, help_text in (
        ("auth", "dependency and authentication checks"),
        ("quality", "lint, type-check and test"),
        ("build", "package builds"),
        ("deploy", "preview deploy"),
        ("cleanup", "routine channel cleanup"),
        ("report", "report generation"),
    ):
        p_run.add_argument(
            f"--skip-{phase}", action="store_true", default=None,
            help=f"Skip {help_text}",
        )
    _add_retention_args(p_run)
    p_run.add_argument(
        "--check-timeout", type=float, dest="check_timeout_s", default=None,
        help="Per-check timeout in seconds",
    )
    p_run.add_argument(
        "--build-timeout", type=float, dest="build_timeout_s", default=None,
        help="Per-package build timeout in seconds",
    )
    p_run.add_argument(
        "--deploy-timeout", type=float, dest="deploy_timeout_s", default=None,
        help="Deploy timeout in seconds",
    )
    p_run.add_argument(
        "--halt-on-quality-failure", action="store_true", dest="quality_halt_on_failure",
        default=None, help="Stop the run when any quality check fails",
    )
    p_run.add_argument(
        "--continue-on-failure", action="store_true", dest="quality_continue_on_failure",
        default=None, help="Keep running sequential checks after a failure",
    )
    p_run.add_argument(
        "--cache", action="store_true", dest="cache_enabled", default=None,
        help="Reuse validation and build results when inputs are unchanged",
    )
    p_run.add_argument(
        "--no-cache", action="store_false", dest="cache_enabled", default=None,
        help="Ignore cached validation and build results",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- cleanup ---
    p_cleanup = subparsers.add_parser("cleanup", help="Delete old preview channels")
    p_cleanup.add_argument(
        "--aggressive", action="store_true",
        help="Keep only the aggressive keep-count and ignore the threshold",
    )
    _add_retention_args(p_cleanup)
    p_cleanup.set_defaults(func=_cmd_cleanup)

    # --- channel-id ---
    p_channel = subparsers.add_parser(
        "channel-id", help="Print the channel id the next deploy would use",
    )
    p_channel.set_defaults(func=_cmd_channel_id)

    # --- urls ---
    p_urls = subparsers.add_parser(
        "urls", help="Print the preview URLs saved by the last deploy",
    )
    p_urls.set_defaults(func=_cmd_urls)

    return parser


def _add_retention_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--keep-count", type=int, dest="channel_keep_count", default=None,
        help="Newest channels to keep per site",
    )
    p.add_argument(
        "--threshold", type=int, dest="channel_cleanup_threshold", default=None,
        help="Only clean sites with more channels than this",
    )
    p.add_argument(
        "--dry-run", action="store_true", dest="dry_run", default=None,
        help="Show what would happen without deploying or deleting",
    )


_OVERRIDE_FIELDS = (
    "skip_auth", "skip_quality", "skip_build", "skip_deploy", "skip_cleanup",
    "skip_report", "channel_keep_count", "channel_cleanup_threshold", "dry_run",
    "check_timeout_s", "build_timeout_s", "deploy_timeout_s",
    "quality_halt_on_failure", "quality_continue_on_failure", "cache_enabled",
)


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Settings overrides for every flag the user actually passed."""
    overrides = {}
    for name in _OVERRIDE_FIELDS:
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    return overrides


async def _cmd_run(args: argparse.Namespace, settings: Any) -> int:
    """Execute the full pipeline."""
    from previewflow.pipeline.factory import run_pipeline

    context = await run_pipeline(settings)
    _print_run_summary(context)
    return 0 if context.halt is None else 1


async def _cmd_cleanup(args: argparse.Namespace, settings: Any) -> int:
    """Reclaim preview channels without deploying."""
    from previewflow.pipeline.factory import build_reclaimer

    reclaimer = build_reclaimer(settings)
    sites = settings.hosting_sites_list
    if args.aggressive:
        summary = await reclaimer.reclaim_aggressively(sites)
    else:
        summary = await reclaimer.reclaim(
            sites,
            keep_count=settings.channel_keep_count,
            threshold=settings.channel_cleanup_threshold,
        )

    prefix = "[dry-run] " if settings.dry_run else ""
    print(f"\n{prefix}Channel cleanup ({summary.mode}, keep {summary.keep_count}):")
    for site, result in summary.sites.items():
        if result.error:
            print(f"  {site}: ERROR {result.error}")
        elif result.skipped:
            print(f"  {site}: skipped ({result.skip_reason})")
        else:
            print(
                f"  {site}: {len(result.deleted)} deleted, "
                f"{len(result.failed)} failed, {result.remaining} remaining"
            )
    return 0 if summary.success else 1


async def _cmd_channel_id(args: argparse.Namespace, settings: Any) -> int:
    """Print the channel id for the current checkout."""
    from previewflow.deploy.channel_id import generate_channel_id
    from previewflow.vcs.git_vcs import GitVCS

    vcs = GitVCS(cwd=settings.workspace_root, timeout_s=settings.vcs_timeout_s)
    branch = await vcs.get_current_branch()
    pr_number = await vcs.get_pull_request_number()
    print(generate_channel_id(branch, pr_number))
    return 0


async def _cmd_urls(args: argparse.Namespace, settings: Any) -> int:
    """Print preview URLs stored in the run temp dir."""
    from previewflow.storage.preview_urls import load_preview_urls

    urls = load_preview_urls(settings.run_temp_dir)
    if urls is None or urls.empty:
        print("No preview URLs recorded; run a deploy first.", file=sys.stderr)
        return 1
    if urls.channel_id:
        print(f"Channel: {urls.channel_id}")
    for role, url in urls.urls.items():
        print(f"{role.upper()}: {url}")
    for url in urls.generic:
        print(url)
    return 0


def _print_run_summary(context: Any) -> None:
    """Print a human-readable summary of a RunContext."""
    print(f"\nRun {context.run_id}: {context.status.value}")
    for phase in context.phases:
        print(f"  {phase.name.value:<11} {phase.status.value:<10} {phase.duration_ms}ms")
    if context.preview_urls is not None:
        for role, url in context.preview_urls.urls.items():
            print(f"  {role.upper()}: {url}")
    if context.halt is not None and context.halt.next_action:
        print(f"\nNext step: {context.halt.next_action}")


if __name__ == "__main__":
    sys.exit(main())

# src/storage/layout.py — v1
"""Run directory structure definition.

The run temp dir (`temp/` by default) is the hand-off point to report
consumers and is cleared at the start of every run. The logs dir persists
across runs and keeps one preview log per channel.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

# Files under the run temp dir
DEPLOY_LOG = "deploy.log"
PREVIEW_URLS_FILE = "preview-urls.json"
EVENTS_FILE = "events.jsonl"
DASHBOARD_FILE = "dashboard.md"
RUN_CONTEXT_FILE = "run-context.json"
CHECKS_DIR = "checks"

# Persistent preview logs under the logs dir
PREVIEW_LOG_GLOB = "preview-*.log"
MAX_FALLBACK_LOGS = 3


def deploy_log_path(run_dir: Path) -> Path:
    return run_dir / DEPLOY_LOG


def preview_urls_path(run_dir: Path) -> Path:
    return run_dir / PREVIEW_URLS_FILE


def events_path(run_dir: Path) -> Path:
    return run_dir / EVENTS_FILE


def dashboard_path(run_dir: Path) -> Path:
    return run_dir / DASHBOARD_FILE


def run_context_path(run_dir: Path) -> Path:
    return run_dir / RUN_CONTEXT_FILE


def checks_dir(run_dir: Path) -> Path:
    return run_dir / CHECKS_DIR


def check_result_path(run_dir: Path, check_name: str) -> Path:
    safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in check_name)
    return checks_dir(run_dir) / f"{safe}.json"


def preview_log_path(logs_dir: Path, channel_id: str) -> Path:
    return logs_dir / f"preview-{channel_id}.log"


def recent_preview_logs(logs_dir: Path, limit: int = MAX_FALLBACK_LOGS) -> list[Path]:
    """Newest preview logs first, at most `limit`."""
    if not logs_dir.is_dir():
        return []
    logs = sorted(
        logs_dir.glob(PREVIEW_LOG_GLOB),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    return logs[:limit]


def fallback_log_candidates(logs_dir: Path) -> list[Path]:
    """Log files scanned when a deploy produced no URLs, in scan order.

    The run's own deploy.log is excluded: it holds the output that just
    yielded nothing.
    """
    return recent_preview_logs(logs_dir)


def prepare_run_dir(run_dir: Path) -> Path:
    """Empty and recreate the run temp dir, including checks/."""
    if run_dir.exists():
        logger.debug("Clearing run directory %s", run_dir)
        shutil.rmtree(run_dir)
    checks_dir(run_dir).mkdir(parents=True, exist_ok=True)
    return run_dir

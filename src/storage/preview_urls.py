# src/storage/preview_urls.py — v1
"""Persistence of extracted preview URLs."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from previewflow.deploy.models import PreviewUrls
from previewflow.storage import layout

logger = logging.getLogger(__name__)


def save_preview_urls(run_dir: Path, urls: PreviewUrls) -> Path:
    """Write preview-urls.json into the run dir."""
    path = layout.preview_urls_path(run_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(urls.model_dump_json(indent=2), encoding="utf-8")
    return path


def load_preview_urls(run_dir: Path) -> PreviewUrls | None:
    """Read preview-urls.json back; None when absent or unreadable."""
    path = layout.preview_urls_path(run_dir)
    if not path.exists():
        return None
    try:
        urls = PreviewUrls.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return None
    return urls.model_copy(update={"source": "stored"})


def append_preview_log(logs_dir: Path, channel_id: str, urls: PreviewUrls) -> Path:
    """Append labeled URLs to logs/preview-<channel>.log.

    Lines use the `ROLE: <url>` form so later log scans resolve roles.
    """
    path = layout.preview_log_path(logs_dir, channel_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"# {urls.timestamp.isoformat()} channel={channel_id}"]
    lines += [f"{role.upper()}: {url}" for role, url in urls.urls.items()]
    lines += [f"- {url}" for url in urls.generic]
    with path.open("a", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    return path

# src/deploy/url_extractor.py — v1
"""Preview URL extraction from deploy output and log files.

Extraction runs an ordered rule list. Role-labeled markers (`ADMIN: <url>`)
are authoritative; generic hosting URL shapes only fill roles that are
still unresolved. Generic URLs that match no role are reported separately,
and only while at least one role is unresolved.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from previewflow.deploy.models import PreviewUrls

logger = logging.getLogger(__name__)

_TRAILING = ".,;:)]}'\"`"


@dataclass(frozen=True)
class UrlRule:
    """One extraction pattern. Labeled rules carry a `role` group."""

    name: str
    pattern: re.Pattern[str]
    labeled: bool = False


URL_RULES: tuple[UrlRule, ...] = (
    UrlRule(
        "role-label",
        re.compile(r"\b(?P<role>[A-Za-z][A-Za-z0-9_-]*):\s+(?P<url>https?://\S+)"),
        labeled=True,
    ),
    UrlRule(
        "channel-url",
        re.compile(
            r"Channel URL(?: for site \[[^\]]*\]| \([^)]*\))?:\s*(?P<url>https://\S+)",
            re.IGNORECASE,
        ),
    ),
    UrlRule(
        "dash-line",
        re.compile(r"^\s*-\s+(?P<url>https://\S+)", re.MULTILINE),
    ),
    UrlRule(
        "web-app",
        re.compile(
            r"(?P<url>https://[a-zA-Z0-9][a-zA-Z0-9-]*--[a-zA-Z0-9][a-zA-Z0-9-]*\.web\.app)"
        ),
    ),
    UrlRule(
        "firebaseapp",
        re.compile(
            r"(?P<url>https://[a-zA-Z0-9][a-zA-Z0-9-]*--[a-zA-Z0-9][a-zA-Z0-9-]*\.firebaseapp\.com)"
        ),
    ),
)


def _clean(url: str) -> str:
    return url.rstrip(_TRAILING)


def extract_urls(
    text: str,
    roles: Sequence[str],
    rules: Sequence[UrlRule] = URL_RULES,
    site_roles: Mapping[str, str] | None = None,
) -> PreviewUrls:
    """Extract role URLs (and leftover generic URLs) from text.

    Args:
        text: Deploy output or log content.
        roles: Expected roles, e.g. ["admin", "hours"].
        rules: Ordered extraction rules.
        site_roles: Hosting site → role. When given, a generic URL is
            assigned by its site label exactly instead of by role name.
    """
    wanted = [r.lower() for r in roles]
    by_site = {s.lower(): r.lower() for s, r in (site_roles or {}).items()}
    role_urls: dict[str, str] = {}
    generic: list[str] = []

    for rule in rules:
        for match in rule.pattern.finditer(text or ""):
            url = _clean(match.group("url"))
            if rule.labeled:
                role = match.group("role").lower()
                if role in wanted and role not in role_urls:
                    role_urls[role] = url
            elif url not in generic:
                generic.append(url)

    assigned = set(role_urls.values())
    leftovers: list[str] = []
    for url in generic:
        if url in assigned:
            continue
        role = _role_for_url(url, [r for r in wanted if r not in role_urls], by_site)
        if role is not None:
            role_urls[role] = url
            assigned.add(url)
        else:
            leftovers.append(url)

    unresolved = any(r not in role_urls for r in wanted)
    ordered = {r: role_urls[r] for r in wanted if r in role_urls}
    return PreviewUrls(urls=ordered, generic=leftovers if unresolved else [])


def extract_role_urls(text: str, roles: Sequence[str]) -> dict[str, str]:
    """Role → URL mapping only."""
    return extract_urls(text, roles).urls


def site_label(url: str) -> str:
    """Site part of a hosting URL: the host label before `--`, or the
    first DNS label when the host carries no channel suffix."""
    host = url.split("://", 1)[-1].split("/", 1)[0].lower()
    if "--" in host:
        return host.split("--", 1)[0]
    return host.split(".", 1)[0]


def _role_for_url(url: str, roles: Sequence[str], by_site: Mapping[str, str]) -> str | None:
    label = site_label(url)
    if label in by_site:
        role = by_site[label]
        return role if role in roles else None
    for role in roles:
        if role in label:
            return role
    return None


def find_urls_in_log_files(
    paths: Iterable[Path],
    roles: Sequence[str],
    site_roles: Mapping[str, str] | None = None,
) -> PreviewUrls | None:
    """Scan log files in order; return the first that yields URLs.

    Unreadable or missing files are skipped. The result is tagged as a
    fallback with a fresh timestamp.
    """
    for path in paths:
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Skipping log file %s: %s", path, e)
            continue
        found = extract_urls(text, roles, site_roles=site_roles)
        if not found.empty:
            logger.info("Recovered preview URLs from %s", path)
            return found.model_copy(update={"source": "log-fallback", "is_fallback": True})
    return None

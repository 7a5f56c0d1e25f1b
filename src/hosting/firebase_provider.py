# src/hosting/firebase_provider.py — v1
"""Firebase Hosting provider backed by the firebase CLI."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from previewflow.core.commands import CommandRunner, run_command
from previewflow.hosting.base_provider import BaseHostingProvider
from previewflow.hosting.models import (
    Channel,
    ProviderDeleteResponse,
    ProviderDeployResponse,
)

logger = logging.getLogger(__name__)

_HTTP_ERROR_RE = re.compile(r"HTTP Error:\s*(\d{3})")
_CHANNEL_NAME_RE = re.compile(r"/channels/([^/]+)$")


class FirebaseCliProvider(BaseHostingProvider):
    """Drive `firebase hosting:channel:*` commands.

    Args:
        project_id: Firebase project; empty uses the CLI's active project.
        cwd: Directory holding firebase.json.
        channel_expires: Channel TTL passed to --expires (e.g. "7d").
        deploy_timeout_s: Timeout for deploy commands.
        channel_timeout_s: Timeout for list/delete commands.
        runner: Command runner (injectable for tests).
    """

    def __init__(
        self,
        project_id: str = "",
        cwd: Path | None = None,
        channel_expires: str = "7d",
        deploy_timeout_s: float = 300.0,
        channel_timeout_s: float = 60.0,
        runner: CommandRunner = run_command,
    ) -> None:
        self._project_id = project_id
        self._cwd = cwd
        self._channel_expires = channel_expires
        self._deploy_timeout_s = deploy_timeout_s
        self._channel_timeout_s = channel_timeout_s
        self._runner = runner

    @property
    def provider_name(self) -> str:
        return "firebase"

    def _project_args(self) -> list[str]:
        return [f"--project={self._project_id}"] if self._project_id else []

    async def list_channels(self, site: str) -> list[Channel]:
        args = [
            "firebase", "hosting:channel:list",
            f"--site={site}", *self._project_args(), "--json",
        ]
        result = await self._runner(args, cwd=self._cwd, timeout_s=self._channel_timeout_s)
        if not result.success:
            raise RuntimeError(
                f"Failed to list channels for {site}: {result.error or result.stderr.strip()}"
            )
        return parse_channel_list(result.stdout, site)

    async def deploy_to_channel(
        self,
        site: str,
        channel_id: str,
        artifact_path: Path,
        message: str,
    ) -> ProviderDeployResponse:
        if not Path(artifact_path).exists():
            return ProviderDeployResponse(
                success=False,
                error=f"Artifact directory not found: {artifact_path}",
            )

        args = [
            "firebase", "hosting:channel:deploy", channel_id,
            f"--only={site}", f"--expires={self._channel_expires}",
            *self._project_args(),
        ]
        logger.info("Deploying %s to channel %s (%s)", site, channel_id, message)
        result = await self._runner(args, cwd=self._cwd, timeout_s=self._deploy_timeout_s)
        raw = result.output
        if result.error and result.error not in raw:
            raw = f"{raw}\nError: {result.error}" if raw else f"Error: {result.error}"

        error_code: int | None = None
        match = _HTTP_ERROR_RE.search(raw)
        if match:
            error_code = int(match.group(1))

        return ProviderDeployResponse(
            success=result.success,
            raw_output=raw,
            error_code=error_code,
            error=None if result.success else (result.error or _last_error_line(raw)),
        )

    async def delete_channel(self, site: str, channel_id: str) -> ProviderDeleteResponse:
        args = [
            "firebase", "hosting:channel:delete", channel_id,
            f"--site={site}", *self._project_args(), "--force",
        ]
        result = await self._runner(args, cwd=self._cwd, timeout_s=self._channel_timeout_s)
        if result.success:
            return ProviderDeleteResponse(success=True)
        return ProviderDeleteResponse(
            success=False,
            error=result.error or _last_error_line(result.output) or "delete failed",
        )


def parse_channel_list(output: str, site: str) -> list[Channel]:
    """Parse `hosting:channel:list --json` output into Channels.

    Raises:
        ValueError: If the output is not the expected JSON document.
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise ValueError(f"Unparseable channel list for {site}: {e}") from e

    raw_channels: list[dict[str, Any]] = (data.get("result") or {}).get("channels") or []
    channels: list[Channel] = []
    for raw in raw_channels:
        name = raw.get("name", "")
        match = _CHANNEL_NAME_RE.search(name)
        channels.append(Channel(
            id=match.group(1) if match else name,
            site=site,
            created_at=_parse_time(raw.get("createTime")),
            updated_at=_parse_time(raw.get("updateTime")),
            url=raw.get("url", ""),
            expire_time=_parse_time(raw.get("expireTime")),
        ))
    return channels


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable channel timestamp: %s", value)
        return None


def _last_error_line(output: str) -> str | None:
    for line in reversed(output.splitlines()):
        if "error" in line.lower():
            return line.strip()
    return None

# src/auth/providers.py — v1
"""Credential checks for the services a deploy depends on.

A provider verifies one service. Providers that can repair credentials also
implement the Reauthenticator protocol; the gate only retries those.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Protocol, runtime_checkable

from previewflow.auth.models import AuthStatus
from previewflow.core.commands import CommandRunner, run_command
from previewflow.core.models import CommandResult

logger = logging.getLogger(__name__)

NETWORK_ERROR_MARKERS = (
    "timeout",
    "timed out",
    "econnrefused",
    "connection refused",
    "etimedout",
    "enotfound",
    "econnreset",
    "network",
)

FIREBASE_REMEDIATION = "firebase login --reauth"
FIREBASE_INSTALL = "npm install -g firebase-tools"
GIT_REMEDIATION = (
    'git config --global user.name "Your Name" && '
    'git config --global user.email "you@example.com"'
)


def is_network_error(text: str | None) -> bool:
    """Heuristic for transient network-class failures."""
    lowered = (text or "").lower()
    return any(marker in lowered for marker in NETWORK_ERROR_MARKERS)


class BaseAuthProvider(ABC):
    """Verify credentials for one service."""

    service: str = ""
    remediation: str | None = None

    @abstractmethod
    async def check(self) -> AuthStatus:
        """Current authentication status; never raises."""


@runtime_checkable
class Reauthenticator(Protocol):
    async def reauthenticate(self) -> bool: ...


class FirebaseAuthProvider(BaseAuthProvider):
    """Hosting CLI login state via `firebase login:list --json`.

    A CI token (FIREBASE_TOKEN) or service-account key
    (GOOGLE_APPLICATION_CREDENTIALS) counts as authenticated.
    """

    service = "hosting"
    remediation = FIREBASE_REMEDIATION

    def __init__(
        self,
        cwd: Path | None = None,
        timeout_s: float = 30.0,
        environ: Mapping[str, str] | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self._cwd = cwd
        self._timeout_s = timeout_s
        self._environ = environ if environ is not None else os.environ
        self._runner = runner

    async def check(self) -> AuthStatus:
        if self._environ.get("FIREBASE_TOKEN"):
            return AuthStatus(service=self.service, authenticated=True, identity="ci-token")
        key_file = self._environ.get("GOOGLE_APPLICATION_CREDENTIALS")
        if key_file and Path(key_file).is_file():
            return AuthStatus(service=self.service, authenticated=True, identity="service-account")

        result = await self._runner(
            ["firebase", "login:list", "--json"], cwd=self._cwd, timeout_s=self._timeout_s
        )
        if result.missing_binary:
            return AuthStatus(
                service=self.service,
                authenticated=False,
                error="firebase CLI not found",
                recoverable=False,
                remediation=FIREBASE_INSTALL,
            )
        if not result.success:
            return self._failure(result, result.error or result.output.strip() or "login check failed")

        identity = _first_login_email(result.stdout)
        if identity is None:
            return self._failure(result, "No authenticated firebase account")
        return AuthStatus(service=self.service, authenticated=True, identity=identity)

    async def reauthenticate(self) -> bool:
        logger.info("Attempting firebase reauthentication")
        result = await self._runner(
            ["firebase", "login", "--reauth"], cwd=self._cwd, timeout_s=self._timeout_s
        )
        if not result.success:
            logger.warning("firebase login --reauth failed: %s", result.error or result.stderr.strip())
        return result.success

    def _failure(self, result: CommandResult, error: str) -> AuthStatus:
        return AuthStatus(
            service=self.service,
            authenticated=False,
            error=error,
            recoverable=True,
            network_error=result.timed_out or is_network_error(f"{error}\n{result.output}"),
            remediation=self.remediation,
        )


def _first_login_email(output: str) -> str | None:
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    accounts = data.get("result")
    if not isinstance(accounts, list):
        return None
    for account in accounts:
        if not isinstance(account, dict):
            continue
        user = account.get("user")
        email = user.get("email") if isinstance(user, dict) else None
        if email:
            return email
    return None


class GitAuthProvider(BaseAuthProvider):
    """Git commit identity (user.name / user.email). Not repairable here."""

    service = "vcs"
    remediation = GIT_REMEDIATION

    def __init__(
        self,
        cwd: Path | None = None,
        timeout_s: float = 30.0,
        runner: CommandRunner = run_command,
    ) -> None:
        self._cwd = cwd
        self._timeout_s = timeout_s
        self._runner = runner

    async def _config(self, key: str) -> CommandResult:
        return await self._runner(
            ["git", "config", key], cwd=self._cwd, timeout_s=self._timeout_s
        )

    async def check(self) -> AuthStatus:
        name = await self._config("user.name")
        if name.missing_binary:
            return AuthStatus(
                service=self.service,
                authenticated=False,
                error="git not found",
                recoverable=False,
                remediation="Install git from https://git-scm.com",
            )
        email = await self._config("user.email")
        missing = [
            key for key, res in (("user.name", name), ("user.email", email))
            if not res.success or not res.stdout.strip()
        ]
        if missing:
            return AuthStatus(
                service=self.service,
                authenticated=False,
                error=f"git {', '.join(missing)} not configured",
                recoverable=False,
                remediation=self.remediation,
            )
        return AuthStatus(
            service=self.service,
            authenticated=True,
            identity=f"{name.stdout.strip()} <{email.stdout.strip()}>",
        )

# src/auth/models.py — v1
"""Authentication models: AuthRequirements, AuthStatus, AuthResult."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AuthRequirements(BaseModel):
    """Which services must be authenticated before the pipeline proceeds."""

    hosting: bool = True
    vcs: bool = True

    def required_services(self) -> list[str]:
        services = []
        if self.hosting:
            services.append("hosting")
        if self.vcs:
            services.append("vcs")
        return services


class AuthStatus(BaseModel):
    """Verification outcome for one service."""

    service: str
    authenticated: bool
    identity: str | None = None
    error: str | None = None
    recoverable: bool = True
    network_error: bool = False
    attempts: int = 0
    remediation: str | None = None


class AuthResult(BaseModel):
    """Outcome of AuthGate.verify()."""

    success: bool
    services: dict[str, AuthStatus] = Field(default_factory=dict)

    @property
    def failed_services(self) -> list[AuthStatus]:
        return [s for s in self.services.values() if not s.authenticated]

    @property
    def remediation(self) -> str | None:
        """First concrete fix for the first failing service."""
        for status in self.failed_services:
            if status.remediation:
                return status.remediation
        return None

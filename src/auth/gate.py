# src/auth/gate.py — v1
"""Authentication gate: verify each required service, repair where possible.

Recoverable failures of providers that can reauthenticate are retried
through the shared with_retry combinator, re-verifying after every attempt.
Network-class failures back off longer than generic ones.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Mapping

from previewflow.auth.models import AuthRequirements, AuthResult, AuthStatus
from previewflow.auth.providers import BaseAuthProvider, Reauthenticator
from previewflow.core.models import PhaseName
from previewflow.core.retry import RetryExhausted, RetryPolicy, with_retry
from previewflow.pipeline.state import RunContext

logger = logging.getLogger(__name__)


class _StillUnauthenticated(Exception):
    def __init__(self, status: AuthStatus) -> None:
        self.status = status
        super().__init__(status.error or f"{status.service} not authenticated")


class AuthGate:
    """Verify and, where possible, repair credentials before a run.

    Args:
        providers: Service name -> provider.
        max_attempts: Reauthentication attempts per recoverable service.
        backoff_s: Delay after a generic failed attempt.
        network_backoff_s: Delay after a network-class failed attempt.
        sleep: Injectable sleep.
    """

    def __init__(
        self,
        providers: Mapping[str, BaseAuthProvider],
        max_attempts: int = 3,
        backoff_s: float = 2.0,
        network_backoff_s: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._providers = dict(providers)
        self._reauthenticators = {
            name: p for name, p in self._providers.items() if isinstance(p, Reauthenticator)
        }
        self._policy = RetryPolicy(
            max_attempts=max_attempts,
            backoff=lambda _n, e: network_backoff_s if _is_network(e) else backoff_s,
            is_retryable=lambda e: isinstance(e, _StillUnauthenticated) and e.status.recoverable,
        )
        self._sleep = sleep

    async def verify(
        self,
        requirements: AuthRequirements,
        context: RunContext | None = None,
    ) -> AuthResult:
        """Check every required service; the result lists each one's status."""
        statuses: dict[str, AuthStatus] = {}
        for service in requirements.required_services():
            start = time.monotonic()
            status = await self._verify_service(service)
            statuses[service] = status
            if context is not None:
                context.record_step(
                    f"auth:{service}",
                    PhaseName.SETUP,
                    status.authenticated,
                    int((time.monotonic() - start) * 1000),
                    None if status.authenticated else status.error,
                )
            if status.authenticated:
                logger.info("%s authenticated as %s", service, status.identity or "<unknown>")
            else:
                logger.error("%s authentication failed: %s", service, status.error)

        return AuthResult(
            success=all(s.authenticated for s in statuses.values()),
            services=statuses,
        )

    async def _verify_service(self, service: str) -> AuthStatus:
        provider = self._providers.get(service)
        if provider is None:
            return AuthStatus(
                service=service,
                authenticated=False,
                error=f"No authentication provider configured for '{service}'",
                recoverable=False,
            )

        status = await provider.check()
        status.attempts = 1
        if status.authenticated:
            return status

        reauth = self._reauthenticators.get(service)
        if not status.recoverable or reauth is None:
            status.recoverable = False
            return status

        async def attempt(n: int) -> AuthStatus:
            await reauth.reauthenticate()
            current = await provider.check()
            current.attempts = n + 1
            if not current.authenticated:
                raise _StillUnauthenticated(current)
            return current

        try:
            return await with_retry(
                attempt, self._policy, name=f"reauth:{service}", sleep=self._sleep
            )
        except RetryExhausted as e:
            return _status_of(e.last_error, status)
        except _StillUnauthenticated as e:
            return e.status


def _is_network(error: BaseException) -> bool:
    return isinstance(error, _StillUnauthenticated) and error.status.network_error


def _status_of(error: BaseException, default: AuthStatus) -> AuthStatus:
    return error.status if isinstance(error, _StillUnauthenticated) else default

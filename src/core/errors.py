# src/core/errors.py — v1
"""Workflow error taxonomy.

Every error carries the step it came from, the underlying cause and a
suggestion: one concrete command or action the operator can take next.
The runner prints the suggestion on every halt path.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for pipeline failures.

    Args:
        message: Human-readable description.
        step: Step or phase where the error occurred.
        cause: Underlying exception, if any.
        suggestion: Concrete next action for the operator.
    """

    default_suggestion: str | None = None

    def __init__(
        self,
        message: str,
        step: str | None = None,
        cause: BaseException | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.message = message
        self.step = step
        self.cause = cause
        self.suggestion = suggestion or self.default_suggestion
        super().__init__(message)

    def __str__(self) -> str:
        text = self.message
        if self.step:
            text = f"[{self.step}] {text}"
        if self.cause is not None:
            text += f" (caused by {type(self.cause).__name__}: {self.cause})"
        return text

    @classmethod
    def wrap(
        cls,
        exc: BaseException,
        step: str | None = None,
        suggestion: str | None = None,
    ) -> WorkflowError:
        """Wrap an unexpected exception, keeping WorkflowErrors as they are."""
        if isinstance(exc, WorkflowError):
            return exc
        return cls(
            f"Unexpected error: {exc}",
            step=step,
            cause=exc,
            suggestion=suggestion or "Re-run with --verbose and inspect the traceback",
        )


class AuthenticationError(WorkflowError):
    """Credentials could not be verified or repaired. Halts the run."""

    default_suggestion = "firebase login --reauth"


class DependencyError(WorkflowError):
    """A required external tool is missing. Halts the run."""

    default_suggestion = "npm install -g firebase-tools pnpm"


class QualityCheckError(WorkflowError):
    """A quality check failed and was escalated to a halt."""

    def __init__(
        self,
        message: str,
        check_name: str,
        cause: BaseException | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.check_name = check_name
        super().__init__(
            message,
            step=check_name,
            cause=cause,
            suggestion=suggestion or _quality_suggestion(check_name),
        )


class BuildError(WorkflowError):
    """One or more packages failed to build. Halts before deploy."""

    default_suggestion = "pnpm install && pnpm run build"


class DeploymentError(WorkflowError):
    """Deploy to the preview channel failed."""

    default_suggestion = "firebase hosting:channel:deploy <channel-id>"


class QuotaExceededError(DeploymentError):
    """The hosting provider rejected the deploy with a channel-quota error."""

    default_suggestion = (
        "Delete old channels with `previewflow cleanup --aggressive` and re-run"
    )


def _quality_suggestion(check_name: str) -> str:
    name = check_name.lower()
    if "lint" in name:
        return "pnpm run lint:fix"
    if "type" in name:
        return "pnpm run typecheck"
    if "test" in name:
        return "pnpm run test"
    return f"Re-run the '{check_name}' check locally and fix the reported issues"

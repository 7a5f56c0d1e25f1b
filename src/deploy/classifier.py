# src/deploy/classifier.py — v1
"""Classify raw provider deploy responses."""

from __future__ import annotations

from previewflow.deploy.models import DeployOutcome
from previewflow.hosting.models import ProviderDeployResponse

# Node deprecation chatter the hosting CLI prints on stderr.
DEPRECATION_SIGNATURES = (
    "[DEP0040]",
    "DeprecationWarning: The `punycode` module is deprecated",
)
ERROR_MARKERS = ("Error:", "Command failed with exit code")
QUOTA_MARKERS = ("quota reached", "http error: 429", "resource_exhausted")
QUOTA_ERROR_CODES = {"429", "RESOURCE_EXHAUSTED"}


def is_quota_error(response: ProviderDeployResponse) -> bool:
    if response.error_code is not None and str(response.error_code) in QUOTA_ERROR_CODES:
        return True
    text = f"{response.raw_output}\n{response.error or ''}".lower()
    return any(marker in text for marker in QUOTA_MARKERS)


def is_benign_output(raw_output: str) -> bool:
    """Deprecation noise only, with no real error marker."""
    if not any(sig in raw_output for sig in DEPRECATION_SIGNATURES):
        return False
    return not any(marker in raw_output for marker in ERROR_MARKERS)


def classify_deploy_response(response: ProviderDeployResponse) -> DeployOutcome:
    """Map a provider response to SUCCESS, BENIGN, QUOTA_EXCEEDED or FAILURE.

    A non-zero exit whose only output is deprecation chatter counts as
    BENIGN (a success). Quota is checked before the benign signature so a
    quota rejection is never mistaken for noise.
    """
    if response.success:
        return DeployOutcome.SUCCESS
    if is_quota_error(response):
        return DeployOutcome.QUOTA_EXCEEDED
    if is_benign_output(response.raw_output):
        return DeployOutcome.BENIGN
    return DeployOutcome.FAILURE

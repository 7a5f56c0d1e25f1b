# src/hosting/base_provider.py — v1
"""Abstract hosting provider interface.

Implementations must keep deprecation chatter in raw_output untouched
(classification happens in the deployment manager) and must surface quota
rejections with a stable status code or message substring.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from previewflow.hosting.models import (
    Channel,
    ProviderDeleteResponse,
    ProviderDeployResponse,
)


class BaseHostingProvider(ABC):
    """Unified interface for preview-channel hosting backends."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short provider identifier used in logs and reports."""

    @abstractmethod
    async def list_channels(self, site: str) -> list[Channel]:
        """List every channel of a site, including the live channel."""

    @abstractmethod
    async def deploy_to_channel(
        self,
        site: str,
        channel_id: str,
        artifact_path: Path,
        message: str,
    ) -> ProviderDeployResponse:
        """Deploy a built artifact to a (possibly new) preview channel."""

    @abstractmethod
    async def delete_channel(self, site: str, channel_id: str) -> ProviderDeleteResponse:
        """Delete one preview channel."""

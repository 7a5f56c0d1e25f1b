# src/hosting/provider_factory.py — v1
"""Factory for hosting provider instantiation."""

from __future__ import annotations

from previewflow.config.settings import Settings
from previewflow.hosting.base_provider import BaseHostingProvider


def create_hosting_provider(settings: Settings | None = None) -> BaseHostingProvider:
    """Instantiate the configured hosting backend.

    Args:
        settings: Application settings. Defaults to the firebase CLI backend.

    Returns:
        Configured BaseHostingProvider implementation.
    """
    backend = "firebase" if settings is None else settings.hosting_provider

    if backend == "firebase":
        from previewflow.hosting.firebase_provider import FirebaseCliProvider

        if settings is None:
            return FirebaseCliProvider()
        return FirebaseCliProvider(
            project_id=settings.project_id,
            cwd=settings.workspace_root,
            channel_expires=settings.channel_expires,
            deploy_timeout_s=settings.deploy_timeout_s,
            channel_timeout_s=settings.channel_timeout_s,
        )

    raise ValueError(f"Unsupported hosting provider: {backend!r}")

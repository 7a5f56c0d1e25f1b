# src/__init__.py — v1
"""previewflow — preview channel deployment pipeline."""

from previewflow.version import __version__

__all__ = ["__version__"]

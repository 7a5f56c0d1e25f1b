# src/build/models.py — v1
"""Build domain models: PackageSpec, PackageBuildResult, BuildReport."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class PackageSpec(BaseModel):
    """One buildable package of the web property."""

    name: str
    path: Path
    command: str
    output_dir: Path
    key_files: list[str] = Field(default_factory=lambda: ["index.html", "assets"])


class PackageBuildResult(BaseModel):
    """Outcome and output metrics of one package build."""

    package_name: str
    success: bool
    duration_ms: int = 0
    file_count: int = 0
    total_size_bytes: int = 0
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    cached: bool = False


class BuildReport(BaseModel):
    """All package results plus the aggregate metrics."""

    results: dict[str, PackageBuildResult] = Field(default_factory=dict)
    success: bool = False
    total_duration_ms: int = 0
    mean_duration_ms: float = 0.0
    success_rate: float = 0.0
    total_size_bytes: int = 0
    total_file_count: int = 0

    @property
    def failed_packages(self) -> list[str]:
        return [name for name, r in self.results.items() if not r.success]

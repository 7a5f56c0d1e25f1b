# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for every tunable knob of a pipeline run: hosting
targets, package layout, quality commands, phase skips, channel retention
and per-operation timeouts. CLI flags are applied as overrides on top.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class ExtraCheckConfig(BaseModel):
    """An additional quality check declared in QUALITY_EXTRA_CHECKS.

    Extra checks are static analyses (bundle size, dead code, docs
    freshness, workflow validation) and default to parallel_safe.
    """

    name: str
    command: str
    parallel_safe: bool = True
    required: bool = False


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === HOSTING ===
    hosting_provider: Literal["firebase"] = "firebase"
    project_id: str = ""
    hosting_sites: str = "admin-site,hours-site"
    hosting_roles: str = "admin,hours"
    channel_expires: str = "7d"

    # === PACKAGES ===
    packages: str = "admin,hours"
    packages_root: Path = Path("packages")
    package_output_dir: str = "dist"
    build_key_files: str = "index.html,assets"
    build_command: str = "pnpm --filter {package} run build"

    # === QUALITY ===
    quality_lint_command: str = "pnpm run lint"
    quality_typecheck_command: str = "pnpm run typecheck"
    quality_test_command: str = "pnpm run test"
    quality_lint_fix_command: str = "pnpm run lint:fix"
    quality_halt_on_failure: bool = False
    quality_continue_on_failure: bool = False
    quality_required_checks: str = ""
    quality_extra_checks: list[ExtraCheckConfig] = []

    # === CACHE ===
    cache_enabled: bool = False
    cache_dir: Path = Path(".previewflow-cache")
    cache_ttl_s: float = 86400.0
    cache_validation_inputs: str = "package.json,pnpm-lock.yaml,tsconfig.json,.eslintrc.js,packages"

    # === PHASES ===
    skip_auth: bool = False
    skip_quality: bool = False
    skip_build: bool = False
    skip_deploy: bool = False
    skip_cleanup: bool = False
    skip_report: bool = False
    dry_run: bool = False

    # === DEPENDENCIES ===
    required_binaries: str = "firebase,git,pnpm"

    # === CHANNEL RETENTION ===
    channel_keep_count: int = 5
    channel_cleanup_threshold: int = 5
    channel_aggressive_keep_count: int = 3

    # === AUTH RETRY ===
    auth_max_attempts: int = 3
    auth_backoff_s: float = 2.0
    auth_network_backoff_s: float = 5.0

    # === TIMEOUTS (seconds) ===
    auth_timeout_s: float = 30.0
    check_timeout_s: float = 180.0
    build_timeout_s: float = 300.0
    deploy_timeout_s: float = 300.0
    channel_timeout_s: float = 60.0
    vcs_timeout_s: float = 30.0

    # === PATHS ===
    workspace_root: Path = Path(".")
    temp_dir: Path = Path("temp")
    logs_dir: Path = Path("logs")

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("channel_keep_count", "channel_aggressive_keep_count")
    @classmethod
    def validate_keep_count(cls, v: int) -> int:
        """Keep counts must retain at least one channel."""
        if v < 1:
            raise ValueError("keep count must be >= 1")
        return v

    @field_validator("channel_cleanup_threshold")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if v < 0:
            raise ValueError("channel_cleanup_threshold must be >= 0")
        return v

    @field_validator(
        "auth_timeout_s",
        "check_timeout_s",
        "build_timeout_s",
        "deploy_timeout_s",
        "channel_timeout_s",
        "vcs_timeout_s",
        "cache_ttl_s",
    )
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("auth_max_attempts")
    @classmethod
    def validate_auth_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("auth_max_attempts must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if len(self.hosting_sites_list) != len(self.hosting_roles_list):
            errors.append(
                "HOSTING_SITES and HOSTING_ROLES must list the same number of entries"
            )

        if len(self.packages_list) != len(self.hosting_roles_list):
            errors.append(
                "PACKAGES and HOSTING_ROLES must list the same number of entries"
            )

        if self.channel_aggressive_keep_count > self.channel_keep_count:
            errors.append(
                "CHANNEL_AGGRESSIVE_KEEP_COUNT must be <= CHANNEL_KEEP_COUNT"
            )

        if "{package}" not in self.build_command:
            errors.append("BUILD_COMMAND must contain a {package} placeholder")

        builtin = {"lint", "typecheck", "test"}
        extra_names = [c.name for c in self.quality_extra_checks]
        clashes = sorted(set(extra_names) & builtin)
        if clashes:
            errors.append(f"QUALITY_EXTRA_CHECKS reuses built-in check name(s): {', '.join(clashes)}")
        if len(set(extra_names)) != len(extra_names):
            errors.append("QUALITY_EXTRA_CHECKS names must be unique")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def hosting_sites_list(self) -> list[str]:
        """Parse comma-separated hosting sites."""
        return [s.strip() for s in self.hosting_sites.split(",") if s.strip()]

    @property
    def hosting_roles_list(self) -> list[str]:
        """Parse comma-separated URL roles, aligned with hosting_sites."""
        return [r.strip().lower() for r in self.hosting_roles.split(",") if r.strip()]

    @property
    def packages_list(self) -> list[str]:
        """Parse comma-separated package names, aligned with hosting_roles."""
        return [p.strip() for p in self.packages.split(",") if p.strip()]

    @property
    def build_key_files_list(self) -> list[str]:
        return [f.strip() for f in self.build_key_files.split(",") if f.strip()]

    @property
    def required_binaries_list(self) -> list[str]:
        return [b.strip() for b in self.required_binaries.split(",") if b.strip()]

    @property
    def quality_required_checks_list(self) -> list[str]:
        return [c.strip() for c in self.quality_required_checks.split(",") if c.strip()]

    @property
    def cache_validation_inputs_list(self) -> list[str]:
        return [p.strip() for p in self.cache_validation_inputs.split(",") if p.strip()]

    @property
    def cache_root(self) -> Path:
        return (self.workspace_root / self.cache_dir).expanduser()

    @property
    def run_temp_dir(self) -> Path:
        """Run-scoped temp directory, resolved against the workspace root."""
        return (self.workspace_root / self.temp_dir).expanduser()

    @property
    def run_logs_dir(self) -> Path:
        return (self.workspace_root / self.logs_dir).expanduser()

    def phase_options(self) -> dict[str, object]:
        """Snapshot of the options that shape a run, stored in RunContext."""
        return {
            "skip_auth": self.skip_auth,
            "skip_quality": self.skip_quality,
            "skip_build": self.skip_build,
            "skip_deploy": self.skip_deploy,
            "skip_cleanup": self.skip_cleanup,
            "skip_report": self.skip_report,
            "dry_run": self.dry_run,
            "channel_keep_count": self.channel_keep_count,
            "channel_cleanup_threshold": self.channel_cleanup_threshold,
            "quality_halt_on_failure": self.quality_halt_on_failure,
            "cache_enabled": self.cache_enabled,
            "sites": self.hosting_sites_list,
            "packages": self.packages_list,
        }


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (CLI flags or tests).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]

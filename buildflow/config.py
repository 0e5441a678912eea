"""Configuration settings for buildflow.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_work_dir() -> Path:
    """Return the default root for workflow working directories."""
    return Path.home() / ".cache" / "buildflow" / "workflows"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the BUILDFLOW_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="BUILDFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    work_dir: Path = Field(
        default_factory=_default_work_dir,
        description="Root directory under which workflow base directories are created",
    )
    logs_dir: Path | None = Field(
        default=None,
        description="Directory for per-step command logs (disabled if not set)",
    )

    # Step execution
    shell: str = Field(
        default="/bin/bash -eo pipefail",
        min_length=1,
        description="Shell used to run step commands (invoked with -c)",
    )
    inherit_environ: bool = Field(
        default=True,
        description="Layer the step environment on top of the process environment",
    )
    step_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Timeout for a single step command in seconds (None = no limit)",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]

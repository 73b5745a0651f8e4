"""
Shared configuration management for the feature gating engine.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatingConfig(BaseSettings):
    """Runtime configuration, read from ``FEATURE_GATING_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="FEATURE_GATING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Runtime overrides, e.g. FEATURE_GATING_PLATFORM=ios FEATURE_GATING_OS_VERSION=11.2
    platform: Optional[str] = Field(default=None)
    os_version: Optional[str] = Field(default=None)

    # Evaluation
    cache_results: bool = Field(default=True)

    # User toggles
    toggles_file: Optional[Path] = Field(default=None)


@lru_cache(maxsize=1)
def get_config() -> GatingConfig:
    """Get the process-wide configuration."""
    return GatingConfig()

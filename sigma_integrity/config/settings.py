"""
Application Settings - Pydantic Settings for configuration management.

Supports environment variables and .env file loading.
"""

from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import BeforeValidator, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def normalize_to_lowercase(v: str) -> str:
    """Normalize string to lowercase."""
    if isinstance(v, str):
        return v.lower()
    return v


RepairStrategy = Literal["conservative", "aggressive", "adaptive"]


class SelfRepairConfig(BaseSettings):
    """Sigma self-repair settings."""

    model_config = SettingsConfigDict(env_prefix="SIGMA_REPAIR_")

    integrity_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Minimum integrity score for a healthy record"
    )
    max_memory_entries: int = Field(
        default=100, ge=1, description="Maximum entries kept in the memory attribute"
    )

    # Strategy used when pruning an overgrown memory (case-insensitive)
    repair_strategy: Annotated[
        RepairStrategy,
        BeforeValidator(normalize_to_lowercase),
    ] = Field(default="adaptive", description="Memory pruning strategy")

    enable_cascade_check: bool = Field(
        default=True, description="Check neighbor records for propagated damage"
    )
    log_repairs: bool = Field(
        default=True, description="Append a self-repair entry to the record's memory"
    )


class ObservabilitySettings(BaseSettings):
    """Observability and monitoring settings."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_")

    # Logging
    log_format: Literal["json", "console"] = Field(
        default="json", description="Log format (json for production, console for development)"
    )

    # Metrics
    metrics_enabled: bool = Field(default=True, description="Enable repair metrics collection")


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="Sigma Integrity Engine", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Sub-settings
    self_repair: SelfRepairConfig = Field(default_factory=SelfRepairConfig)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def resolve_config(
    config: SelfRepairConfig | None = None,
    **overrides: Any,
) -> SelfRepairConfig:
    """
    Build the effective self-repair config for a single call.

    Args:
        config: Base config (defaults to the cached application settings)
        **overrides: Field values replacing those of the base config

    Returns:
        Validated SelfRepairConfig
    """
    base = config if config is not None else get_settings().self_repair
    if not overrides:
        return base
    return SelfRepairConfig.model_validate({**base.model_dump(), **overrides})

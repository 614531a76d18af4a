"""Configuration for the sigma integrity engine."""

from sigma_integrity.config.settings import (
    ObservabilitySettings,
    RepairStrategy,
    SelfRepairConfig,
    Settings,
    get_settings,
    resolve_config,
)

__all__ = [
    "ObservabilitySettings",
    "RepairStrategy",
    "SelfRepairConfig",
    "Settings",
    "get_settings",
    "resolve_config",
]

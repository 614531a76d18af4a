"""
Pytest Configuration and Shared Fixtures.

This module provides shared fixtures for testing the sigma integrity engine.
"""

from collections.abc import Generator
from typing import Any
from unittest.mock import patch

import pytest

from sigma_integrity.config.settings import SelfRepairConfig, Settings, get_settings
from sigma_integrity.observability.metrics import get_repair_metrics


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Make every test start from freshly loaded settings."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_metrics() -> Generator[None, None, None]:
    """Reset the global repair metrics around each test."""
    get_repair_metrics().reset()
    yield
    get_repair_metrics().reset()


@pytest.fixture
def test_settings() -> Settings:
    """Provide settings loaded from a controlled environment."""
    with patch.dict(
        "os.environ",
        {
            "SIGMA_REPAIR_INTEGRITY_THRESHOLD": "0.8",
            "SIGMA_REPAIR_MAX_MEMORY_ENTRIES": "25",
            "SIGMA_REPAIR_REPAIR_STRATEGY": "Conservative",
            "OBSERVABILITY_LOG_FORMAT": "console",
        },
    ):
        get_settings.cache_clear()
        return get_settings()


@pytest.fixture
def default_config() -> SelfRepairConfig:
    """Default self-repair config."""
    return SelfRepairConfig()


# =============================================================================
# Record Fixtures
# =============================================================================


def make_healthy_record() -> dict[str, Any]:
    """Create a fully well-formed sigma record."""
    return {
        "field": {"center": 0, "neighbors": ["n1", "n2"], "dim": 2, "domain": "physics"},
        "flow": {"velocity": 1.5, "acceleration": 0.0, "phase": "steady", "momentum": 0.5},
        "memory": [{"event": "created"}, {"event": "updated"}],
        "layer": {"depth": 2, "structure": "nested", "expandable": True},
        "relation": {"refs": ["x"], "dependencies": [], "entanglements": [], "isolated": False},
        "will": {"tendency": "explore", "strength": 0.7, "intrinsic": "centered"},
    }


def make_memory(count: int, prefix: str = "event") -> list[dict[str, Any]]:
    """Create `count` plain memory entries."""
    return [{"event": f"{prefix}_{i}"} for i in range(count)]


@pytest.fixture
def healthy_record() -> dict[str, Any]:
    """A fully well-formed sigma record."""
    return make_healthy_record()


@pytest.fixture
def missing_field_and_will() -> dict[str, Any]:
    """A record missing its field and will attributes."""
    return {
        "flow": {"phase": "rest"},
        "memory": [],
        "layer": {"depth": 1},
        "relation": {"refs": []},
    }


@pytest.fixture
def overgrown_record() -> dict[str, Any]:
    """A healthy record whose memory holds 150 entries."""
    record = make_healthy_record()
    record["memory"] = make_memory(150)
    return record

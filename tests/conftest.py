"""Pytest configuration and shared fixtures for the overlay tests."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


# Add project root to path so imports work
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from geo_engine.constants import OverlayConfig, load_config  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s [%(levelname)s] %(message)s",
    )


@pytest.fixture
def default_config() -> OverlayConfig:
    """The shipped default configuration."""
    return load_config(PROJECT_ROOT / "config" / "default_config.yaml")


@pytest.fixture
def june_solstice() -> datetime:
    """2024 June solstice (declination close to +23.44°)."""
    return datetime(2024, 6, 20, 20, 51, tzinfo=timezone.utc)

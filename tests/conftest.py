"""
Shared pytest fixtures and configuration for litebridge tests.

This module provides:
- Quiet structlog configuration for the whole session
- Settings cache / logging context cleanup for test isolation
- Database file paths under pytest's tmp_path

Async tests open their own connections with ``async with litebridge.open()``
so every connection is bound to the test's own event loop.
"""

from pathlib import Path
from typing import Generator

import pytest

from litebridge.core.logging import clear_context, configure_logging
from litebridge.core.settings import get_settings


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Tests touching database files are integration tests, the rest unit."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if markers.intersection({"unit", "integration"}):
            continue
        if "tmp_path" in getattr(item, "fixturenames", ()):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_logging() -> None:
    configure_logging(level="WARNING", json_format=False, add_timestamp=False)


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Drop the cached process settings and logging context around each test."""
    get_settings.cache_clear()
    clear_context()
    yield
    get_settings.cache_clear()
    clear_context()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a not-yet-created database file in a fresh directory."""
    return tmp_path / "bridge.db"

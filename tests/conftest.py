"""
Shared pytest fixtures and configuration for dbagent tests.

This module provides:
- Settings cache and environment isolation
- Logging reset between tests (the CLI reconfigures structlog per command)
- A fixed clock used by the scheduling tests

Fixtures are auto-discovered by pytest; use them as function arguments.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import structlog

from dbagent.core.settings import clear_settings_cache

# 2024-01-01 00:05 UTC: five minutes past an hourly cron boundary.
FIXED_NOW = datetime(2024, 1, 1, 0, 5, tzinfo=UTC)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if test_path.parts[0] in ("api", "cli"):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Drop cached settings and any DBAGENT_* variables from the host."""
    for key in list(os.environ):
        if key.startswith("DBAGENT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


@pytest.fixture
def fixed_now() -> datetime:
    """The scheduling tests' notion of "now"."""
    return FIXED_NOW

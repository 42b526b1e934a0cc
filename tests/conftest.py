"""Shared pytest configuration and fixtures for the test suite.

This module centralizes:
- Path setup (eliminates sys.path hacks in individual test files)
- Pytest markers for test categorization (unit, integration, property)
- A fixed clock and fresh stores for consolidation tests
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest


# ==============================================================================
# Path Setup - Ensures harvester/ is importable
# ==============================================================================

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from harvester.data.backend import MemoryBackend, SqliteBackend  # noqa: E402
from harvester.data.consolidation import ConsolidationStore  # noqa: E402
from tests.helpers.clocks import FIXED_NOW, ManualClock  # noqa: E402


# ==============================================================================
# Pytest Configuration
# ==============================================================================

def pytest_configure(config):
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "unit: Fast tests with no I/O (mocked dependencies)",
    )
    config.addinivalue_line(
        "markers",
        "integration: Tests hitting SQLite, file system, or network",
    )
    config.addinivalue_line(
        "markers",
        "property: Hypothesis property-based tests",
    )


# ==============================================================================
# Clocks
# ==============================================================================

@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def fixed_now():
    return lambda: FIXED_NOW


# ==============================================================================
# Stores
# ==============================================================================

@pytest.fixture
def memory_store(fixed_now) -> ConsolidationStore:
    return ConsolidationStore(MemoryBackend(), clock=fixed_now)


@pytest.fixture
def sqlite_store(tmp_path, fixed_now) -> ConsolidationStore:
    return ConsolidationStore(SqliteBackend(tmp_path / "harvester.db"), clock=fixed_now)


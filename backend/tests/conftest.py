"""Pytest configuration for the WalkMuse backend test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the backend package root is on the path so tests can import
# modules directly (e.g. `import leg_calculator`) without a package prefix.
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import load_settings  # noqa: E402


@pytest.fixture
def settings():
    """Settings built from an empty environment: no keys, OSRM enabled."""
    return load_settings({})

"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the path for runs without an editable install
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from coquille.config import reload_config  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_config():
    """Reload the global config around every test so env patches never leak."""
    reload_config()
    yield
    reload_config()

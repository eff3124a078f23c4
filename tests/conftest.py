"""Pytest configuration shared by the unit and integration suites"""

import logging
import sys
from pathlib import Path

import pytest

# Add the project root and src directory to Python path so tests can import properly
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(project_root / "src"))


@pytest.fixture(autouse=True)
def relay_debug_logging(caplog):
    """Capture relay logs at DEBUG so poll attempts show up in failure output."""
    caplog.set_level(logging.DEBUG, logger="agent_relay")
    yield


def pytest_configure(config):
    """Register the markers used by the suites."""
    config.addinivalue_line("markers", "integration: end-to-end tests against a simulated platform")

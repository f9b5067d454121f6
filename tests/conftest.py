"""
pytest configuration for cache-sync tests.

Adds src directory to Python path for imports and sets up test environment.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def _reset_log_context():
    """Per-event log context must not leak between tests."""
    from core.logging.context import clear_log_context, set_log_context

    yield
    clear_log_context()
    set_log_context(worker_id="")


@pytest.fixture(autouse=True)
def _reset_config_singleton():
    from config.config import reset_config

    yield
    reset_config()

"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path so `tests.*` helpers import cleanly
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from pinnode.config import Config  # noqa: E402
from tests.factories import make_config  # noqa: E402


@pytest.fixture
def config() -> Config:
    return make_config()

"""Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
"""

import sys
from pathlib import Path

import pytest

# Ensure project root is in PYTHONPATH for imports to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Shared fakes live next to this file
tests_root = Path(__file__).parent
if str(tests_root) not in sys.path:
    sys.path.insert(0, str(tests_root))

from fakes import RecordingCallback, ScriptedModel, make_settings  # noqa: E402


@pytest.fixture
def settings():
    """Agent settings with zero retry delays."""
    return make_settings()


@pytest.fixture
def callback():
    return RecordingCallback()


@pytest.fixture
def model():
    return ScriptedModel()

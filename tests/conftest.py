"""Shared fixtures for the earthspace test suite."""

import os
from datetime import datetime

import pytest

from earthspace.config import reset_default_config

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Keep EARTHSPACE_* variables from the shell out of every test."""
    for name in list(os.environ):
        if name.startswith("EARTHSPACE_"):
            monkeypatch.delenv(name)
    reset_default_config()
    yield
    reset_default_config()


@pytest.fixture
def fixed_clock():
    """Clock that always returns FIXED_NOW."""
    return lambda: FIXED_NOW

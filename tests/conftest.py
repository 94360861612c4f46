"""Shared fixtures for the Taskline test suite."""

import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from taskline.config import reset_settings

# Wednesday 2026-03-11 10:00 at UTC+01:00
FIXED_NOW = datetime(2026, 3, 11, 10, 0, tzinfo=timezone(timedelta(hours=1)))


@pytest.fixture(autouse=True)
def _clean_settings():
    """Reset the settings singleton before and after each test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def socket_path():
    """A short socket path; unix socket addresses are limited to ~100 bytes."""
    directory = tempfile.mkdtemp(prefix="tl-", dir="/tmp")
    yield str(Path(directory) / "t.sock")
    shutil.rmtree(directory, ignore_errors=True)

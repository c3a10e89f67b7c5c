"""Shared pytest fixtures for dit tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from dit.config import DitConfig
from dit.engine import DitEngine
from dit.repository import FileRepository


@pytest.fixture
def temp_root():
    """Create a temporary storage root."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_root):
    """Create a test configuration."""
    return DitConfig(root=temp_root, lock_timeout=1.0)


@pytest.fixture
def repo(temp_root):
    """Create a file repository over the temp root."""
    return FileRepository(temp_root)


@pytest.fixture
def engine(config):
    """Create a test engine."""
    return DitEngine(config)


@pytest.fixture
def ts():
    """Factory for fixed-offset timestamps: ts("2020-01-01 10:00")."""

    def _make(text: str, offset_hours: int = 1) -> datetime:
        tz = timezone(timedelta(hours=offset_hours))
        return datetime.strptime(text, "%Y-%m-%d %H:%M").replace(tzinfo=tz)

    return _make

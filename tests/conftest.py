"""Shared fixtures for the board engine tests."""

import asyncio
from datetime import datetime

import pytest

from notekanban.store import SQLiteNoteStore


@pytest.fixture
def store(tmp_path):
    """Empty SQLite note store in a temp directory."""
    return SQLiteNoteStore(str(tmp_path / "notes.db"))


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2025, 1, 31, 9, 30)


@pytest.fixture
def run():
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run

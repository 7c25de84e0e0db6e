"""Shared fixtures. Points the app at a throwaway database before it is imported."""

import os
import tempfile
from datetime import datetime

import pytest

_db_dir = tempfile.mkdtemp(prefix="studydeck-test-")
os.environ.setdefault("STUDYDECK_DATABASE_URL", f"sqlite+aiosqlite:///{_db_dir}/test.db")
os.environ["STUDYDECK_ANTHROPIC_API_KEY"] = ""

from backend.storage import InMemoryStore, StudyRepository  # noqa: E402
from helpers import NOW  # noqa: E402


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def repository() -> StudyRepository:
    """Repository over a fresh in-memory store."""
    return StudyRepository(InMemoryStore())

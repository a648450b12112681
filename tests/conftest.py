"""
Shared pytest configuration for the TrueLocal backend tests.

The settings object is built at import time, so the environment is pinned
here before any ``truelocal`` module is imported: an in-memory SQLite
database, no Redis (in-process Socket.IO manager) and a fixed JWT secret.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = ""
os.environ["JWT_SECRET"] = "truelocal-test-secret"
os.environ["LLM_API_KEY"] = "test-key"

from datetime import datetime, timezone  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Supports ``db.execute()``, ``db.add()``, ``db.flush()`` and
    ``db.commit()`` out of the box, and carries a real ``info`` dict so
    change staging works.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.info = {}
    return session


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def fixed_now() -> datetime:
    """Wednesday 2025-03-12 15:00 UTC (week starts Sunday 2025-03-09)."""
    return datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


def row(**fields) -> SimpleNamespace:
    """A lightweight stand-in for a result row or ORM instance."""
    return SimpleNamespace(**fields)

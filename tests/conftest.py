"""
Pytest configuration and fixtures for greenhouse device tests.
"""

import asyncio
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path for imports (greenhouse package and device/ scripts)
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_TOKEN"] = "test-admin-token"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import func, select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from greenhouse.api.main import app  # noqa: E402
from greenhouse.core.database import Base, get_db  # noqa: E402
from greenhouse.models import Device, Heartbeat  # noqa: E402

ADMIN_TOKEN = "test-admin-token"
NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def naive(value: datetime) -> datetime:
    """SQLite hands back naive UTC datetimes."""
    return value.replace(tzinfo=None)


@pytest.fixture
def session_maker(tmp_path):
    """Fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def run(session_maker):
    """Run a coroutine function with a fresh session: run(fn, *args)."""
    def _run(fn, *args, **kwargs):
        async def _inner():
            async with session_maker() as session:
                return await fn(session, *args, **kwargs)
        return asyncio.run(_inner())
    return _run


@pytest.fixture
def make_device(run):
    """Insert a device and return it."""
    def _make(**fields):
        fields.setdefault("composite_device_id", "PROJ1-ESP5")

        async def _insert(session):
            device = Device(**fields)
            session.add(device)
            await session.commit()
            return device

        return run(_insert)
    return _make


@pytest.fixture
def fetch_device(run):
    """Reload a device row from the database."""
    def _fetch(device_id):
        async def _get(session):
            return await session.get(Device, device_id)
        return run(_get)
    return _fetch


@pytest.fixture
def count_heartbeats(run):
    def _count(device_id=None):
        async def _query(session):
            stmt = select(func.count(Heartbeat.id))
            if device_id is not None:
                stmt = stmt.where(Heartbeat.device_id == device_id)
            return await session.scalar(stmt)
        return run(_query)
    return _count


@pytest.fixture
def client(session_maker):
    """API client bound to the per-test database."""
    async def _get_test_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"x-admin-token": ADMIN_TOKEN}

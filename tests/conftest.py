import os
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.config.settings import Settings, get_settings
from jobqueue.infra.database import Database, get_database
from jobqueue.main import create_app
from jobqueue.v1.core.registries import JobRegistry
from jobqueue.v1.jobs.models import Job
from jobqueue.v1.jobs.service import QueueManager
from jobqueue.v1.scheduler.models import ScheduledJob


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at PostgreSQL when DATABASE_URL names one, else a temp SQLite file."""
    database_url = os.getenv("DATABASE_URL")
    if not (database_url and "postgresql" in database_url):
        database_url = f"sqlite+aiosqlite:///{tmp_path / 'jobqueue.db'}"

    return Settings(
        database_url=database_url,
        environment="development",
        job_poll_interval_s=0.05,
        job_heartbeat_interval_s=0.05,
        job_lease_sweep_interval_s=0.05,
        job_backoff_base_ms=0,
        job_max_attempts=3,
        scheduler_tick_interval_s=0.05,
        scheduler_timezone="UTC",
        scheduler_load_defaults=False,
    )


async def _delete_all(database: Database) -> None:
    async with database.SessionLocal() as session:
        await session.execute(delete(Job))
        await session.execute(delete(ScheduledJob))
        await session.commit()


@pytest.fixture
async def database(test_settings: Settings) -> AsyncGenerator[Database, None]:
    """Create the schema and clean both tables around each test."""
    db = Database(test_settings)
    await db.create_all()
    await _delete_all(db)

    yield db

    await _delete_all(db)
    await db.close()


@pytest.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """A session for sequential use within one test."""
    async with database.SessionLocal() as session:
        yield session


@pytest.fixture
def queue(test_settings: Settings) -> QueueManager:
    return QueueManager(test_settings)


@pytest.fixture
def registry() -> JobRegistry:
    """A fresh handler registry, isolated from the global one."""
    return JobRegistry()


@pytest.fixture
def enqueue(database: Database, queue: QueueManager):
    """Enqueue a job in its own short-lived session."""

    async def _enqueue(job_type: str = "test_job", payload: Any = None, **kwargs):
        async with database.SessionLocal() as session:
            return await queue.enqueue(
                session, job_type, {} if payload is None else payload, **kwargs
            )

    return _enqueue


@pytest.fixture
def fetch_job(database: Database, queue: QueueManager):
    """Read a job back in its own short-lived session."""

    async def _fetch(job_id):
        async with database.SessionLocal() as session:
            return await queue.get_job(session, job_id)

    return _fetch


class RecordingHandler:
    """Test handler that fails a set number of times before succeeding."""

    def __init__(self, failures: int = 0, error: Exception | None = None, result=None):
        self.failures = failures
        self.error = error or RuntimeError("temporary failure")
        self.result = result
        self.calls: list[Any] = []

    async def handle(self, payload: Any) -> dict[str, Any] | None:
        self.calls.append(payload)
        if len(self.calls) <= self.failures:
            raise self.error
        return self.result


@pytest.fixture
def recording_handler_factory():
    return RecordingHandler


@pytest.fixture
def app(test_settings: Settings, database: Database) -> FastAPI:
    """FastAPI application wired to the test database."""
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_database] = lambda: database

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

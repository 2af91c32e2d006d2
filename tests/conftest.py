"""
Shared fixtures — one in-memory SQLite database per test.

Components are built exactly as the application lifespan builds them, only
pointed at ``sqlite+aiosqlite:///:memory:`` and a simulated email transport.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend.app.alerts.channels.email_alert import SimulatedEmailTransport
from backend.app.alerts.dispatcher import NotificationDispatcher
from backend.app.alerts.realtime import RealtimeHub
from backend.app.alerts.repository import AlertRepository, RecipientDirectory
from backend.app.alerts.scope import ScopeResolver
from backend.app.alerts.service import AlertService
from backend.app.alerts.snapshot import SnapshotAggregator
from backend.app.core.config import Settings
from backend.app.core.database import Database

from tests.helpers import MEMORY_URL, FixedClock


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        DATABASE_URL=MEMORY_URL,
        ENVIRONMENT="testing",
        LOG_LEVEL="WARNING",
        OPERATOR_API_KEYS=[],
        EMAIL_PROVIDER="simulation",
        SSE_HEARTBEAT_SECONDS=0.05,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
async def database():
    db = Database(MEMORY_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def repository(database: Database, clock: FixedClock) -> AlertRepository:
    return AlertRepository(database, clock=clock)


@pytest.fixture
def directory(database: Database) -> RecipientDirectory:
    return RecipientDirectory(database)


@pytest.fixture
def aggregator(repository, directory, clock) -> SnapshotAggregator:
    return SnapshotAggregator(repository, directory, clock=clock)


@pytest.fixture
async def hub(aggregator):
    h = RealtimeHub(aggregator, snapshot_limit=20, max_subscribers=10, queue_size=4)
    await h.start()
    yield h
    await h.stop()


@pytest.fixture
def transport() -> SimulatedEmailTransport:
    return SimulatedEmailTransport()


@pytest.fixture
def service(repository, directory, transport, hub) -> AlertService:
    return AlertService(
        repository,
        ScopeResolver(directory),
        NotificationDispatcher(transport, max_concurrency=4, timeout_seconds=1.0),
        hub,
    )

"""Shared test fixtures."""
import asyncio
from typing import Generator
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from fieldsync.models.audit import Audit  # noqa: F401
from fieldsync.models.cache import Earning, JobCard, Schedule  # noqa: F401
from fieldsync.connectivity.probe import ManualProbe
from fieldsync.connectivity.tracker import ConnectivityTracker
from fieldsync.events import EventBus
from fieldsync.remote import client as endpoints
from fieldsync.remote.auth import CredentialStore
from fieldsync.store.pending import PendingMutationStore
from fieldsync.sync.engine import SyncEngine


class FakeApi:
    """
    Scripted stand-in for the field API.

    `client` is an AsyncMock exposing send()/close() like RemoteApiClient.
    Put an exception in `failures[endpoint]` to make that endpoint fail.
    Every send() yields to the event loop once, like a real network call.
    """

    def __init__(self):
        self.calls = []
        self.failures = {}
        self.responses = {
            endpoints.UPLOAD_PHOTO: {"url": "https://cdn.example.com/photo.jpg"},
            endpoints.SYNC_JOB_CARDS: {"success": True},
            endpoints.USER_SCHEDULE: {"schedules": []},
            endpoints.USER_JOB_CARDS: {"jobCards": []},
            endpoints.USER_EARNINGS: {"earnings": []},
        }
        self._next_id = 1000
        self.client = AsyncMock()
        self.client.send = AsyncMock(side_effect=self._send)

    async def _send(self, endpoint, method="GET", body=None):
        self.calls.append((endpoint, method, body))
        await asyncio.sleep(0)
        if endpoint in self.failures:
            raise self.failures[endpoint]
        if endpoint == endpoints.SYNC_AUDITS:
            self._next_id += 1
            return {"id": self._next_id}
        return self.responses[endpoint]

    def calls_to(self, endpoint):
        return [c for c in self.calls if c[0] == endpoint]


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def store(engine, bus):
    return PendingMutationStore(engine, bus=bus)


@pytest.fixture
def probe():
    return ManualProbe(connected=True)


@pytest.fixture
def tracker(probe, bus):
    """Tracker starts online (its default before initialize())."""
    return ConnectivityTracker(probe, bus=bus)


@pytest.fixture
def credentials(tmp_path):
    creds = CredentialStore(credentials_dir=tmp_path / "credentials")
    creds.save_token("test-token")
    return creds


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def sleep():
    """Records backoff delays without actually waiting."""
    return AsyncMock()


@pytest.fixture
def sync_engine(store, api, tracker, credentials, bus, sleep):
    return SyncEngine(store, api.client, tracker, credentials, bus=bus, sleep=sleep)

"""
Pytest configuration and shared fixtures for backend tests.

WHAT: Centralized test configuration with markers, stores and test doubles
WHY: Enable test organization, filtering, and shared test utilities
HOW: Environment set before the app is imported, fixtures for stores/cache/manager
"""

import os
import random
import tempfile
from pathlib import Path

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DURABLE_STORE_ENABLED"] = "true"
os.environ["MODERATOR_KEY"] = "test-moderator-key"
os.environ["PAIRING_SEED"] = "7"
os.environ["ROOM_CATALOG_PATH"] = ""
os.environ["LOG_FILE"] = str(Path(tempfile.gettempdir()) / "haggle-tests" / "haggle.log")

import pytest

from haggle.core.cache import HybridCache
from haggle.core.catalog import DEFAULT_ROOMS, RoomCatalog
from haggle.core.session_manager import SessionManager
from haggle.core.store import InMemoryStore, SqlStore
from haggle.models.events import JoinRoom, Notification
from haggle.models.negotiation import Participant
from haggle.services.offer_extractor import ExtractorConfig
from haggle.utils.exceptions import PersistenceError
from haggle.utils.text import utcnow

MODERATOR_KEY = "test-moderator-key"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (multiple components)"
    )


class FailingStore(InMemoryStore):
    """
    In-memory store whose writes can be switched to fail.

    WHAT: Simulate a durable store that stops accepting writes mid-session
    WHY: Cache/store divergence must be observable and must not roll back memory
    HOW: Raise PersistenceError from every write while fail_writes is set
    """

    def __init__(self):
        super().__init__()
        self.fail_writes = False
        self.failed_writes = 0

    def _maybe_fail(self, operation, kind, entity_id):
        if self.fail_writes:
            self.failed_writes += 1
            raise PersistenceError(operation, kind, entity_id, ConnectionError("store offline"))

    async def create(self, kind, row):
        self._maybe_fail("create", kind, row.get("id"))
        return await super().create(kind, row)

    async def update(self, kind, entity_id, values):
        self._maybe_fail("update", kind, entity_id)
        return await super().update(kind, entity_id, values)

    async def insert_message(self, row):
        self._maybe_fail("create", "message", row.get("id"))
        return await super().insert_message(row)


class RecordingNotifier:
    """Notifier that records every notification instead of sending it."""

    def __init__(self):
        self.sent: list[tuple[str, Notification]] = []

    async def notify(self, participant_id: str, notification: Notification) -> None:
        self.sent.append((participant_id, notification))

    def of_type(self, kind: str) -> list[tuple[str, Notification]]:
        return [(pid, n) for pid, n in self.sent if n.type == kind]

    def for_participant(self, participant_id: str, kind: str = None) -> list[Notification]:
        return [
            n for pid, n in self.sent
            if pid == participant_id and (kind is None or n.type == kind)
        ]

    def clear(self):
        self.sent.clear()


def make_participant(participant_id: str, **kwargs) -> Participant:
    """Participant outside any cache, for pure unit tests."""
    return Participant(
        id=participant_id,
        display_name=kwargs.pop("display_name", participant_id.upper()),
        created_at=kwargs.pop("created_at", utcnow()),
        **kwargs
    )


async def join(manager: SessionManager, room_id: str, name: str, **kwargs) -> str:
    """Join a room and return the participant id."""
    result = await manager.handle(JoinRoom(room_id=room_id, display_name=name, **kwargs))
    return result.data["participant_id"]


@pytest.fixture
def rng():
    """Seeded random source for reproducible pairings."""
    return random.Random(1234)


@pytest.fixture
def extractor_config():
    return ExtractorConfig()


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
async def sql_store():
    """SqlStore over a private in-memory SQLite database."""
    store = SqlStore.from_url("sqlite+aiosqlite:///:memory:")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def cache(memory_store):
    cache = HybridCache(memory_store)
    await cache.start()
    return cache


@pytest.fixture
def manager(cache, notifier, rng, extractor_config):
    """Session manager over an in-memory store with the built-in catalog."""
    return SessionManager(
        cache,
        notifier,
        catalog=RoomCatalog(DEFAULT_ROOMS),
        rng=rng,
        extractor_config=extractor_config,
        moderator_key=MODERATOR_KEY,
        auto_pair=True,
    )

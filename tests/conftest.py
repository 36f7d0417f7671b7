"""
Shared fixtures for civic store tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from civic.civic_store.repository import Repositories
from civic.civic_store.store import InMemoryDocumentStore


class FixedClock:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, start: datetime = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock fixed at 2025-06-01 12:00 UTC."""
    return FixedClock()


@pytest_asyncio.fixture
async def store():
    """Connected in-memory store."""
    store = InMemoryDocumentStore()
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def repos(store, clock):
    """Repositories over the in-memory store."""
    return Repositories(store, clock=clock)

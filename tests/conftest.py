"""
Pytest configuration for ledger tests.

This file adds the project root to the Python path so that tests can import
from the domain, repositories and services modules, and provides shared
fixtures (a controllable clock and in-memory persistence).
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from repositories.kv_store import InMemoryKeyValueStore  # noqa: E402
from repositories.ledger_repository import LedgerRepository  # noqa: E402
from services.ledger_service import LedgerService  # noqa: E402
from settings import Settings  # noqa: E402


class FixedClock:
    """Clock returning a fixed UTC instant until advanced."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def repository(kv_store: InMemoryKeyValueStore) -> LedgerRepository:
    return LedgerRepository(kv_store)


@pytest.fixture
def empty_settings() -> Settings:
    return Settings(initial_stock_labels=())


@pytest.fixture
def service(repository: LedgerRepository, clock: FixedClock, empty_settings: Settings) -> LedgerService:
    return LedgerService.load(repository, settings=empty_settings, clock=clock)

import os
import tempfile
from decimal import Decimal

import pytest

from transcribomatic.config.loader import AppConfig
from transcribomatic.storage.memory import InMemoryLedgerRepository
from transcribomatic.storage.repository import SQLiteLedgerRepository

SECRET = "test-secret"
NOW = 1_700_000_000
DAY = 24 * 60 * 60


class FakeClock:
    """Settable stand-in for time.time."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app_config():
    return AppConfig(
        signing_secret=SECRET,
        base_url="https://example.com/app",
        weekly_cost_limit=Decimal("2.00"),
    )


@pytest.fixture
def memory_repository():
    return InMemoryLedgerRepository()


@pytest.fixture
def sqlite_repository():
    with tempfile.TemporaryDirectory() as temp_dir:
        repository = SQLiteLedgerRepository(os.path.join(temp_dir, "test.db"))
        repository.initialize_schema()
        yield repository


@pytest.fixture(params=["sqlite", "memory"])
def repository(request):
    """Both ledger implementations, so every contract test runs twice."""
    return request.getfixturevalue(f"{request.param}_repository")

from datetime import datetime, timedelta, timezone

import pytest

from core.cache import AICacheService
from core.cache_backends import AICacheBackend, MemoryCacheBackend, SQLCacheBackend
from core.config import Settings
from core.database import Database


class FakeClock:
    """Settable UTC clock passed to AICacheService."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, value: datetime) -> None:
        self.now = value


class FailingBackend(AICacheBackend):
    """Backend whose every call raises, like an unreachable database."""

    name = "failing"

    def __init__(self):
        self.calls = 0

    async def find(self, scope, query, query_type, now):
        self.calls += 1
        raise ConnectionError("database is unreachable")

    async def insert(self, entry):
        self.calls += 1
        raise ConnectionError("database is unreachable")

    async def delete_expired(self, now):
        self.calls += 1
        raise ConnectionError("database is unreachable")

    def is_available(self) -> bool:
        return False


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    # Settings() creates the default SQLite directory relative to cwd and reads .env
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def memory_backend():
    return MemoryCacheBackend()


@pytest.fixture
def cache(memory_backend, clock):
    return AICacheService(memory_backend, clock=clock)


@pytest.fixture
def failing_cache(clock):
    return AICacheService(FailingBackend(), clock=clock)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}",
        cleanup_interval=60,
        log_format="console",
    )


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    try:
        yield db
    finally:
        await db.shutdown()


@pytest.fixture
def sql_cache(database, clock):
    return AICacheService(SQLCacheBackend(database), clock=clock)

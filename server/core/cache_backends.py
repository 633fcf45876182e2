"""
Storage backends for the AI result cache.

The cache service talks to an injected backend instead of a shared global
table, so tests and local development can swap in memory storage:
- SQL: SQLModel table on the application database (default)
- Memory: process-local list, lost on restart

Backends raise on storage errors. Fail-open handling belongs to AICacheService.

Usage:
    backend = create_backend(settings, database)
    await backend.insert(entry)
    entry = await backend.find("trip-1", "best beaches", QueryType.RESEARCH, now)
"""

import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import delete
from sqlmodel import select

from core.logging import get_logger
from models.cache import AICacheEntry, QueryType

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database

logger = get_logger(__name__)


class AICacheBackend(ABC):
    """Abstract base class for AI cache storage."""

    name: str = "abstract"

    @abstractmethod
    async def find(self, scope: Optional[str], query: str, query_type: QueryType,
                   now: datetime) -> Optional[AICacheEntry]:
        """Return any matching entry with expires_at > now, newest first."""
        pass

    @abstractmethod
    async def insert(self, entry: AICacheEntry) -> None:
        """Persist a new entry. Never overwrites."""
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Delete every entry with expires_at <= now and return the count."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this backend is ready to serve requests."""
        pass


class SQLCacheBackend(AICacheBackend):
    """
    Cache rows in the ``ai_research_cache`` table.

    Null scope is filtered with ``IS NULL``. ``trip_id = NULL`` never matches
    in SQL, so the global partition needs its own predicate.
    """

    name = "sql"

    def __init__(self, database: "Database"):
        self._database = database

    async def find(self, scope: Optional[str], query: str, query_type: QueryType,
                   now: datetime) -> Optional[AICacheEntry]:
        stmt = select(AICacheEntry).where(
            AICacheEntry.query == query,
            AICacheEntry.query_type == query_type.value,
            AICacheEntry.expires_at > now,
        )
        if scope is None:
            stmt = stmt.where(AICacheEntry.trip_id.is_(None))
        else:
            stmt = stmt.where(AICacheEntry.trip_id == scope)
        stmt = stmt.order_by(AICacheEntry.created_at.desc()).limit(1)

        async with self._database.get_session() as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def insert(self, entry: AICacheEntry) -> None:
        async with self._database.get_session() as session:
            session.add(entry)
            await session.commit()

    async def delete_expired(self, now: datetime) -> int:
        stmt = delete(AICacheEntry).where(AICacheEntry.expires_at <= now)
        async with self._database.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    def is_available(self) -> bool:
        return self._database.is_started


def _copy_entry(entry: AICacheEntry) -> AICacheEntry:
    # Callers never share a payload object with the stored entry
    return AICacheEntry(
        id=entry.id,
        trip_id=entry.trip_id,
        query=entry.query,
        query_type=entry.query_type,
        results=copy.deepcopy(entry.results),
        model=entry.model,
        tokens_used=entry.tokens_used,
        created_at=entry.created_at,
        expires_at=entry.expires_at,
    )


class MemoryCacheBackend(AICacheBackend):
    """
    Process-local backend.

    Best for: tests, local development without a database. Entries are not
    shared between workers.
    """

    name = "memory"

    def __init__(self):
        self.entries: List[AICacheEntry] = []

    async def find(self, scope: Optional[str], query: str, query_type: QueryType,
                   now: datetime) -> Optional[AICacheEntry]:
        matches = [
            e for e in self.entries
            if e.trip_id == scope
            and e.query == query
            and e.query_type == query_type.value
            and e.expires_at > now
        ]
        if not matches:
            return None
        return _copy_entry(max(matches, key=lambda e: e.created_at))

    async def insert(self, entry: AICacheEntry) -> None:
        self.entries.append(_copy_entry(entry))

    async def delete_expired(self, now: datetime) -> int:
        kept = [e for e in self.entries if e.expires_at > now]
        removed = len(self.entries) - len(kept)
        self.entries = kept
        return removed

    def is_available(self) -> bool:
        return True


def create_backend(settings: "Settings", database: Optional["Database"] = None) -> AICacheBackend:
    """Create the backend selected by AI_CACHE_BACKEND."""
    if settings.ai_cache_backend == "memory":
        logger.info("Using in-memory AI cache backend")
        return MemoryCacheBackend()

    if database is None:
        raise ValueError("SQL cache backend requires a database")
    logger.info("Using SQL AI cache backend")
    return SQLCacheBackend(database)

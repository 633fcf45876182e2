"""AICacheService against a real SQLite database through SQLCacheBackend."""

from datetime import timedelta

from sqlmodel import select

from core.cache_backends import SQLCacheBackend
from models.cache import AICacheEntry, QueryType


async def _all_rows(database):
    async with database.get_session() as session:
        result = await session.execute(select(AICacheEntry))
        return result.scalars().all()


async def test_store_then_lookup(sql_cache):
    payload = {"text": "Try Praia da Marinha", "suggestions": [{"name": "Praia da Marinha"}]}
    assert await sql_cache.store("trip-1", " beaches in Algarve ", QueryType.RESEARCH, payload,
                                 model="claude-sonnet-4-5", tokens_used=812) is True

    hit = await sql_cache.lookup("trip-1", "beaches in Algarve", QueryType.RESEARCH)
    assert hit is not None
    assert hit.cached is True
    assert hit.result == payload


async def test_row_contents(sql_cache, database):
    await sql_cache.store("trip-1", "  q  ", QueryType.OPTIMIZATION, ["tip"], model="m", tokens_used=10)

    rows = await _all_rows(database)
    assert len(rows) == 1
    row = rows[0]
    assert row.id
    assert row.trip_id == "trip-1"
    assert row.query == "q"
    assert row.query_type == "optimization"
    assert row.model == "m"
    assert row.tokens_used == 10
    # SQLite hands datetimes back without tzinfo
    created = row.created_at.replace(tzinfo=None)
    expires = row.expires_at.replace(tzinfo=None)
    assert expires - created == timedelta(hours=6)


async def test_null_scope_partition(sql_cache):
    await sql_cache.store(None, "packing list for Bali, 7 days", QueryType.SUGGESTIONS, {"items": ["sarong"]})
    await sql_cache.store("trip-A", "best beaches", QueryType.RESEARCH, "scoped")

    hit = await sql_cache.lookup(None, "packing list for Bali, 7 days", QueryType.SUGGESTIONS)
    assert hit.result == {"items": ["sarong"]}
    assert await sql_cache.lookup("trip-A", "packing list for Bali, 7 days", QueryType.SUGGESTIONS) is None
    assert await sql_cache.lookup(None, "best beaches", QueryType.RESEARCH) is None
    assert await sql_cache.lookup("trip-B", "best beaches", QueryType.RESEARCH) is None


async def test_expiry_boundary(sql_cache, clock):
    start = clock.now
    await sql_cache.store("trip-1", "compare", QueryType.COMPARISON, "A wins")

    clock.set(start + timedelta(minutes=59, seconds=59))
    assert await sql_cache.lookup("trip-1", "compare", QueryType.COMPARISON) is not None

    clock.set(start + timedelta(hours=1))
    assert await sql_cache.lookup("trip-1", "compare", QueryType.COMPARISON) is None


async def test_duplicates_return_newest(sql_cache, database, clock):
    await sql_cache.store("trip-1", "q", QueryType.SUGGESTIONS, "first")
    clock.advance(seconds=1)
    await sql_cache.store("trip-1", "q", QueryType.SUGGESTIONS, "second")

    assert len(await _all_rows(database)) == 2
    assert (await sql_cache.lookup("trip-1", "q", QueryType.SUGGESTIONS)).result == "second"


async def test_cleanup_expired(sql_cache, database, clock):
    await sql_cache.store("trip-1", "old", QueryType.COMPARISON, 1)
    clock.advance(seconds=9)
    await sql_cache.store("trip-1", "stale", QueryType.COMPARISON, 2)
    clock.advance(seconds=101)
    await sql_cache.store("trip-1", "fresh", QueryType.COMPARISON, 3)
    clock.advance(hours=1, seconds=-100)

    assert await sql_cache.cleanup_expired() == 2
    assert [row.query for row in await _all_rows(database)] == ["fresh"]
    assert (await sql_cache.lookup("trip-1", "fresh", QueryType.COMPARISON)).result == 3


async def test_backend_reports_availability(database):
    backend = SQLCacheBackend(database)
    assert backend.is_available() is True
    await database.shutdown()
    assert backend.is_available() is False


async def test_uninitialized_database_fails_open(settings, clock):
    from core.cache import AICacheService
    from core.database import Database

    cache = AICacheService(SQLCacheBackend(Database(settings)), clock=clock)
    assert await cache.store("trip-1", "q", QueryType.RESEARCH, "R") is False
    assert await cache.lookup("trip-1", "q", QueryType.RESEARCH) is None
    assert await cache.cleanup_expired() == 0

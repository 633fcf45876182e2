"""AI result cache.

Deduplicates expensive LLM calls per trip and query type. Each query type has
its own TTL (see models.cache.CACHE_DURATIONS). The cache is best-effort:
a broken backend degrades to recomputation, never to a failed request.
"""

import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from core.cache_backends import AICacheBackend
from core.logging import get_logger, log_cache_operation
from models.cache import AICacheEntry, CachedResult, QueryType, build_ttl_table, utcnow

logger = get_logger(__name__)

KEY_SEPARATOR = "|"


def _string_keys(value: Any) -> Any:
    """Stringify mapping keys at every depth so mixed key types still sort."""
    if isinstance(value, Mapping):
        return {str(k): _string_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_string_keys(v) for v in value]
    return value


def generate_cache_key(params: Mapping[str, Any]) -> str:
    """Build a deterministic query string from structured parameters.

    Keys are sorted, ``None`` values are skipped, dicts and lists are
    serialized as canonical JSON with stringified mapping keys, and scalars
    use their string form:

        >>> generate_cache_key({"b": 2, "a": 1, "c": None})
        'a:1|b:2'
    """
    parts = []
    for key in sorted(params):
        value = params[key]
        if value is None:
            continue
        if isinstance(value, (dict, list, tuple)):
            rendered = json.dumps(_string_keys(value), sort_keys=True, separators=(",", ":"), default=str)
        elif isinstance(value, bool):
            rendered = "true" if value else "false"
        elif isinstance(value, QueryType):
            rendered = value.value
        else:
            rendered = str(value)
        parts.append(f"{key}:{rendered}")
    return KEY_SEPARATOR.join(parts)


class AICacheService:
    """Lookup/store/cleanup over an injected AICacheBackend.

    There is no locking and no single-flight: two concurrent misses for the
    same key both compute and both store, which leaves duplicate rows that
    lookup tolerates.
    """

    def __init__(self, backend: AICacheBackend,
                 ttl_hours: Optional[Dict[str, float]] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.backend = backend
        self.ttls: Dict[QueryType, timedelta] = build_ttl_table(ttl_hours)
        self._clock = clock

    def ttl_for(self, query_type: QueryType) -> timedelta:
        return self.ttls[QueryType(query_type)]

    async def lookup(self, scope: Optional[str], query: str,
                     query_type: QueryType) -> Optional[CachedResult]:
        """Return the cached payload for an unexpired match, else None.

        Matching is exact on the trimmed query text. Backend errors count as
        a miss.
        """
        query_type = QueryType(query_type)
        normalized = query.strip()
        try:
            entry = await self.backend.find(scope, normalized, query_type, self._clock())
        except Exception as e:
            logger.warning("AI cache lookup failed, treating as miss",
                           query_type=query_type.value, trip_id=scope, error=str(e))
            return None

        log_cache_operation(logger, "lookup", query_type.value, scope, hit=entry is not None)
        if entry is None:
            return None
        return CachedResult(result=entry.results, cached=True)

    async def store(self, scope: Optional[str], query: str, query_type: QueryType,
                    result: Any, model: Optional[str] = None,
                    tokens_used: Optional[int] = None) -> bool:
        """Persist a result with the TTL of its query type.

        Returns False when the write failed; the failure is logged here and
        callers are free to ignore the return value.
        """
        query_type = QueryType(query_type)
        now = self._clock()
        entry = AICacheEntry(
            trip_id=scope,
            query=query.strip(),
            query_type=query_type.value,
            results=result,
            model=model,
            tokens_used=tokens_used,
            created_at=now,
            expires_at=now + self.ttl_for(query_type),
        )
        try:
            await self.backend.insert(entry)
        except Exception as e:
            logger.error("AI cache store failed",
                         query_type=query_type.value, trip_id=scope, error=str(e))
            return False

        log_cache_operation(logger, "store", query_type.value, scope,
                            model=model, tokens_used=tokens_used,
                            expires_at=entry.expires_at.isoformat())
        return True

    async def cleanup_expired(self) -> int:
        """Delete entries whose expires_at has passed. Returns count removed, 0 on error."""
        try:
            count = await self.backend.delete_expired(self._clock())
        except Exception as e:
            logger.error("Failed to cleanup expired AI cache", error=str(e))
            return 0

        if count > 0:
            logger.info("Cleaned up expired AI cache entries", count=count)
        return count

    def ttl_table_hours(self) -> Dict[str, float]:
        return {q.value: ttl.total_seconds() / 3600 for q, ttl in self.ttls.items()}

"""AI result cache model and TTL policy.

Entries are keyed by (trip_id, query, query_type). A null trip_id is the
global partition and never matches a scoped entry.
"""

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel
from sqlalchemy import Index, Text
from sqlmodel import SQLModel, Field, Column, DateTime, JSON


class QueryType(str, Enum):
    """Category of AI operation. Each one carries its own TTL."""
    RESEARCH = "research"
    COMPARISON = "comparison"
    OPTIMIZATION = "optimization"
    PLAN_CHANGE = "plan_change"
    SUGGESTIONS = "suggestions"


# Cache expiry durations in hours
CACHE_DURATIONS: Dict[QueryType, float] = {
    QueryType.RESEARCH: 24,
    QueryType.COMPARISON: 1,
    QueryType.OPTIMIZATION: 6,
    QueryType.PLAN_CHANGE: 24,
    QueryType.SUGGESTIONS: 24,
}


def build_ttl_table(overrides: Optional[Dict[str, float]] = None) -> Dict[QueryType, timedelta]:
    """Merge hour overrides (keyed by query type value) into the default table."""
    hours = dict(CACHE_DURATIONS)
    for name, value in (overrides or {}).items():
        hours[QueryType(name)] = value
    return {query_type: timedelta(hours=h) for query_type, h in hours.items()}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AICacheEntry(SQLModel, table=True):
    """Stored AI result. Duplicate rows for one key are allowed."""

    __tablename__ = "ai_research_cache"
    __table_args__ = (
        Index("idx_ai_cache_lookup", "trip_id", "query", "query_type"),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    trip_id: Optional[str] = Field(default=None, index=True, max_length=255)
    query: str = Field(sa_column=Column(Text, nullable=False, index=True))
    query_type: str = Field(max_length=32)
    results: Any = Field(default=None, sa_column=Column(JSON))
    model: Optional[str] = Field(default=None, max_length=255)
    tokens_used: Optional[int] = Field(default=None)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class CachedResult(BaseModel):
    """A cache hit as handed back to callers."""
    result: Any
    cached: bool = True

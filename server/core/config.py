"""Environment-driven configuration with Pydantic v2."""

from typing import Dict, List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from models.cache import QueryType


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3010, ge=1024, le=65535)
    debug: bool = Field(default=False)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/trip_planner.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)

    # AI Result Cache
    ai_cache_backend: Literal["sql", "memory"] = Field(default="sql")
    # Per query type overrides in hours, e.g. AI_CACHE_TTL_HOURS='{"comparison": 2}'
    ai_cache_ttl_hours: Dict[str, float] = Field(default_factory=dict)

    # Expired cache sweep
    cleanup_enabled: bool = Field(default=True)
    cleanup_interval: int = Field(default=3600, ge=60)

    # LLM
    anthropic_api_key: Optional[str] = Field(default=None)
    ai_model: str = Field(default="claude-sonnet-4-5-20250929")
    ai_max_tokens: int = Field(default=4096, ge=256, le=64000)
    ai_timeout: int = Field(default=60, ge=5, le=300)
    ai_max_retries: int = Field(default=2, ge=0, le=5)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("ai_cache_ttl_hours")
    @classmethod
    def validate_ai_cache_ttl_hours(cls, v):
        """Reject overrides for unknown query types or non-positive durations."""
        known = {q.value for q in QueryType}
        unknown = sorted(set(v) - known)
        if unknown:
            raise ValueError(f"Unknown query types in AI_CACHE_TTL_HOURS: {', '.join(unknown)}")
        for query_type, hours in v.items():
            if hours <= 0:
                raise ValueError(f"TTL for {query_type} must be positive")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "forbid",
        "env_parse_none_str": "none",
    }

"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import AICacheService
from core.cache_backends import create_backend
from core.cleanup import CleanupService
from services.ai import AnthropicCompleter, TripAIService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    settings = providers.Singleton(
        Settings,
    )

    database = providers.Singleton(
        Database,
        settings=settings
    )

    cache_backend = providers.Singleton(
        create_backend,
        settings=settings,
        database=database
    )

    # TTL overrides come from AI_CACHE_TTL_HOURS
    ai_cache = providers.Singleton(
        AICacheService,
        backend=cache_backend,
        ttl_hours=settings.provided.ai_cache_ttl_hours
    )

    cleanup_service = providers.Singleton(
        CleanupService,
        cache=ai_cache,
        settings=settings
    )

    completer = providers.Singleton(
        AnthropicCompleter,
        settings=settings
    )

    trip_ai_service = providers.Factory(
        TripAIService,
        cache=ai_cache,
        complete=completer
    )


# Global container instance
container = Container()

"""Periodic sweep of expired AI cache entries.

Lookup already ignores expired rows, so the sweep only reclaims storage.
All configuration from Settings (environment variables).
"""
import asyncio
from typing import Optional, TYPE_CHECKING

from core.logging import get_logger

if TYPE_CHECKING:
    from core.config import Settings
    from core.cache import AICacheService

logger = get_logger(__name__)


class CleanupService:
    """Background task deleting expired cache rows every CLEANUP_INTERVAL seconds."""

    def __init__(self, cache: "AICacheService", settings: "Settings"):
        self.cache = cache
        self.settings = settings
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the cleanup background task."""
        if self._running:
            return
        if not self.settings.cleanup_enabled:
            logger.info("Cleanup service disabled")
            return
        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop())
        logger.info("Cleanup service started", interval=self.settings.cleanup_interval)

    async def stop(self) -> None:
        """Stop the cleanup task gracefully."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cleanup service stopped")

    async def _cleanup_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Cleanup failed", error=str(e))
            await asyncio.sleep(self.settings.cleanup_interval)

    async def run_once(self) -> dict:
        """Run one sweep and return what was removed."""
        return {"expired_cache": await self.cache.cleanup_expired()}

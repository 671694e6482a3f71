"""
Background task that keeps the response cache from holding stale entries.
"""
import asyncio
import logging
from typing import Optional
from app.services.cache import ResponseCache

logger = logging.getLogger(__name__)


class CacheSweepTask:
    """Background task to periodically purge expired cache entries."""

    def __init__(self, cache: ResponseCache, interval_seconds: float = 60):
        """
        Initialize cache sweep task.

        Args:
            cache: Cache to sweep
            interval_seconds: How often to sweep in seconds (default: 60 seconds)
        """
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.is_running = False
        self.task: Optional[asyncio.Task] = None

    def sweep(self) -> int:
        """Purge expired entries once."""
        removed = self.cache.purge_expired()
        if removed:
            logger.info(f"Cache sweep removed {removed} expired entries ({len(self.cache)} remaining)")
        return removed

    async def run(self):
        """Run the sweep periodically."""
        self.is_running = True
        logger.info(f"Cache sweep task started (interval: {self.interval_seconds}s)")

        while self.is_running:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Error in cache sweep task: {e}")

    def start(self):
        """Start the background task."""
        if self.task is None or self.task.done():
            self.task = asyncio.create_task(self.run())
            logger.info("Cache sweep background task scheduled")

    async def stop(self):
        """Stop the background task."""
        self.is_running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        logger.info("Cache sweep background task stopped")

"""
Maintenance scheduler.
APScheduler interval job that sweeps expired cache entries and idle
rate-limit clients. The sweep only bounds memory; reads re-check expiry
themselves.
"""

from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from justhigher.services.cache import CacheManager
from justhigher.services.rate_limiter import RateLimiterRegistry


class MaintenanceScheduler:
    """Periodic cache and rate-limiter cleanup."""

    def __init__(
        self,
        cache: CacheManager,
        rate_limiters: RateLimiterRegistry,
        interval: timedelta = timedelta(minutes=5),
        rate_limit_idle: timedelta = timedelta(hours=1),
    ):
        self.scheduler = AsyncIOScheduler()
        self.cache = cache
        self.rate_limiters = rate_limiters
        self.interval = interval
        self.rate_limit_idle = rate_limit_idle
        self._is_running = False

    async def cleanup_job(self) -> None:
        """Scheduled sweep. Errors are logged so the job keeps its schedule."""
        try:
            await self.run_now()
        except Exception as e:
            logger.error(f"Error in scheduled maintenance: {e}")

    async def run_now(self) -> dict[str, int]:
        """Run one sweep immediately and report what was removed."""
        expired = await self.cache.cleanup_expired()
        idle = self.rate_limiters.cleanup_all(self.rate_limit_idle)
        if expired or idle:
            logger.info(
                f"Maintenance removed {expired} expired cache entries "
                f"and {idle} idle rate-limit clients"
            )
        return {"cache_entries": expired, "rate_limit_clients": idle}

    def start(self) -> None:
        if self._is_running:
            logger.warning("Maintenance scheduler is already running")
            return

        self.scheduler.add_job(
            self.cleanup_job,
            trigger="interval",
            seconds=self.interval.total_seconds(),
            id="maintenance_cleanup_job",
            name="Cache and rate limit cleanup",
            replace_existing=True,
        )
        self.scheduler.start()
        self._is_running = True

        logger.info(
            f"Maintenance scheduler started: sweeping every "
            f"{self.interval.total_seconds():.0f}s"
        )

    def stop(self) -> None:
        if not self._is_running:
            logger.warning("Maintenance scheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Maintenance scheduler stopped")

    def is_running(self) -> bool:
        return self._is_running

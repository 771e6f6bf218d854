"""
Composition root.

``AppContainer`` builds and owns every long-lived object. ``create_app``
wires a FastAPI application around a container and ties the database and
maintenance scheduler to the app lifespan.
"""

import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from fastapi import FastAPI
from loguru import logger

from justhigher.api import register_api
from justhigher.datastore.engine import Database
from justhigher.scheduler import MaintenanceScheduler
from justhigher.services.blog import BlogService, CacheTTLs
from justhigher.services.cache import CacheManager
from justhigher.services.monitoring import (
    ErrorAggregator,
    HealthChecker,
    HealthCheckResult,
    HealthStatus,
    PerformanceMonitor,
)
from justhigher.services.rate_limiter import RateLimiterRegistry
from justhigher.services.retry import RetryPolicy
from justhigher.settings import Settings, global_settings


class AppContainer:
    """
    Owns settings, persistence, shielding layer, monitoring and scheduler.

    Usage:
        container = AppContainer(Settings.from_env())
        await container.start()
        posts = await container.blog.get_published_posts(limit=10)
        await container.stop()
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or global_settings
        self.started_at = time.monotonic()

        self.database = Database(self.settings.database_url, self.settings.database_echo)
        self.cache = CacheManager(
            max_size=self.settings.cache_max_size,
            default_ttl=timedelta(seconds=self.settings.cache_ttl_posts),
            single_flight=self.settings.cache_single_flight,
            debug=self.settings.cache_debug,
        )
        self.retry_policy = RetryPolicy(
            max_attempts=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay,
        )
        self.rate_limiters = RateLimiterRegistry(self.settings.rate_limit_policies())

        self.performance = PerformanceMonitor()
        self.errors = ErrorAggregator()
        self.health = HealthChecker()

        self.blog = BlogService(
            self.database,
            self.cache,
            retry_policy=self.retry_policy,
            ttls=CacheTTLs(
                posts=timedelta(seconds=self.settings.cache_ttl_posts),
                search=timedelta(seconds=self.settings.cache_ttl_search),
                subscribers=timedelta(seconds=self.settings.cache_ttl_subscribers),
                static=timedelta(seconds=self.settings.cache_ttl_static),
            ),
            monitor=self.performance,
        )
        self.scheduler = MaintenanceScheduler(
            self.cache,
            self.rate_limiters,
            interval=timedelta(minutes=self.settings.cleanup_interval_minutes),
            rate_limit_idle=timedelta(hours=self.settings.rate_limit_idle_hours),
        )

        self.health.register("database", self.check_database)
        self.health.register("cache", self.check_cache)

    async def start(self, run_scheduler: bool = True) -> None:
        await self.database.init()
        if run_scheduler:
            self.scheduler.start()
        logger.info(f"{self.settings.site_name} started ({self.settings.environment})")

    async def stop(self) -> None:
        if self.scheduler.is_running():
            self.scheduler.stop()
        await self.cache.close()
        await self.database.close()
        logger.info(f"{self.settings.site_name} stopped")

    async def check_database(self) -> HealthCheckResult:
        start = time.perf_counter()
        try:
            await self.database.ping()
        except Exception as e:
            return HealthCheckResult(
                name="database",
                status=HealthStatus.UNHEALTHY,
                message=f"Database unreachable: {e}",
                response_time_ms=(time.perf_counter() - start) * 1000,
            )
        return HealthCheckResult(
            name="database",
            status=HealthStatus.HEALTHY,
            message="Database connection successful",
            response_time_ms=(time.perf_counter() - start) * 1000,
        )

    async def check_cache(self) -> HealthCheckResult:
        # Fill level is reported only; it never degrades the check.
        stats = self.cache.get_stats()
        return HealthCheckResult(
            name="cache",
            status=HealthStatus.HEALTHY,
            message=(
                f"{stats.size}/{stats.max_size} entries ({stats.fill_ratio:.0%} full), "
                f"hit rate {stats.hit_rate:.0%}"
            ),
        )


def create_app(container: AppContainer | None = None, run_scheduler: bool = True) -> FastAPI:
    container = container or AppContainer()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await container.start(run_scheduler=run_scheduler)
        try:
            yield
        finally:
            await container.stop()

    app = FastAPI(
        title=container.settings.site_name,
        version=container.settings.app_version,
        lifespan=lifespan,
    )
    app.state.container = container
    register_api(app)
    return app

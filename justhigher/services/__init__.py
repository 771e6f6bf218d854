"""
Service layer - request shielding around the persistence backend.

Provides:
- CacheManager: In-process TTL cache with stale-on-error fallback
- SingleFlight: Collapses concurrent cache misses for one key
- with_retry / RetryPolicy: Bounded exponential backoff
- FixedWindowRateLimiter / SlidingWindowRateLimiter: Per-client admission
- HealthChecker / PerformanceMonitor / ErrorAggregator: Runtime monitoring

BlogService lives in ``justhigher.services.blog`` and is imported from there.
"""

from justhigher.services.errors import (
    ServiceError,
    ValidationError,
    RateLimitError,
    ConflictError,
    AlreadySubscribedError,
    NotFoundError,
    BackendError,
    LoadError,
    OperationCancelledError,
)
from justhigher.services.cache import CacheManager, CacheEntry, CacheStats
from justhigher.services.deduplicator import SingleFlight
from justhigher.services.retry import RetryPolicy, with_retry
from justhigher.services.rate_limiter import (
    DEFAULT_POLICIES,
    FixedWindowRateLimiter,
    RateLimitConfig,
    RateLimiterRegistry,
    RateLimitResult,
    SlidingWindowRateLimiter,
    client_identifier,
)
from justhigher.services.monitoring import (
    ErrorAggregator,
    HealthChecker,
    HealthCheckResult,
    HealthStatus,
    PerformanceMonitor,
)

__all__ = [
    # Errors
    "ServiceError",
    "ValidationError",
    "RateLimitError",
    "ConflictError",
    "AlreadySubscribedError",
    "NotFoundError",
    "BackendError",
    "LoadError",
    "OperationCancelledError",
    # Cache
    "CacheManager",
    "CacheEntry",
    "CacheStats",
    "SingleFlight",
    # Retry
    "RetryPolicy",
    "with_retry",
    # Rate limiting
    "DEFAULT_POLICIES",
    "FixedWindowRateLimiter",
    "RateLimitConfig",
    "RateLimiterRegistry",
    "RateLimitResult",
    "SlidingWindowRateLimiter",
    "client_identifier",
    # Monitoring
    "ErrorAggregator",
    "HealthChecker",
    "HealthCheckResult",
    "HealthStatus",
    "PerformanceMonitor",
]

"""
Runtime monitoring: operation timings, health checks and error aggregation.

Instances are built by the composition root and passed to whatever needs
them; nothing here is a module-level singleton.
"""

import time
from collections import OrderedDict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator

from loguru import logger


class HealthStatus(str, Enum):
    """Health check states."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class HealthCheckResult:
    """Result of one registered health check."""

    name: str
    status: HealthStatus
    message: str | None = None
    response_time_ms: float | None = None
    timestamp: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "response_time_ms": self.response_time_ms,
            "timestamp": self.timestamp,
        }


HealthCheckFn = Callable[[], Awaitable[HealthCheckResult]]


class HealthChecker:
    """
    Registry of async health checks.

    A check that raises is reported as unhealthy instead of propagating.
    """

    def __init__(self) -> None:
        self._checks: dict[str, HealthCheckFn] = {}

    def register(self, name: str, check: HealthCheckFn) -> None:
        self._checks[name] = check
        logger.debug(f"Registered health check: {name}")

    async def run(self, name: str) -> HealthCheckResult | None:
        check = self._checks.get(name)
        if check is None:
            return None
        return await self._run_one(name, check)

    async def run_all(self) -> list[HealthCheckResult]:
        return [await self._run_one(name, check) for name, check in self._checks.items()]

    async def _run_one(self, name: str, check: HealthCheckFn) -> HealthCheckResult:
        try:
            return await check()
        except Exception as e:
            logger.warning(f"Health check '{name}' raised: {e}")
            return HealthCheckResult(
                name=name, status=HealthStatus.UNHEALTHY, message=str(e)
            )

    @staticmethod
    def overall(results: list[HealthCheckResult]) -> HealthStatus:
        if any(r.status == HealthStatus.UNHEALTHY for r in results):
            return HealthStatus.UNHEALTHY
        if any(r.status == HealthStatus.DEGRADED for r in results):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY


class PerformanceMonitor:
    """Keeps the most recent ``max_samples`` durations (ms) per operation."""

    def __init__(self, max_samples: int = 100):
        self._max_samples = max_samples
        self._metrics: dict[str, deque[float]] = {}

    def record(self, name: str, value_ms: float) -> None:
        samples = self._metrics.get(name)
        if samples is None:
            samples = deque(maxlen=self._max_samples)
            self._metrics[name] = samples
        samples.append(value_ms)

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        """Record the wall time of the ``with`` block, even if it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - start) * 1000)

    def get_stats(self, name: str) -> dict[str, float] | None:
        samples = self._metrics.get(name)
        if not samples:
            return None

        ordered = sorted(samples)
        count = len(ordered)
        return {
            "count": count,
            "avg": sum(ordered) / count,
            "min": ordered[0],
            "max": ordered[-1],
            "p95": ordered[min(int(count * 0.95), count - 1)],
        }

    def get_all(self) -> dict[str, dict[str, float] | None]:
        return {name: self.get_stats(name) for name in self._metrics}

    def clear(self) -> None:
        self._metrics.clear()


@dataclass
class _ErrorBucket:
    message: str
    count: int
    last_seen: str
    samples: deque[str]


class ErrorAggregator:
    """
    Groups errors by (type, context) and counts occurrences.

    Messages often embed request data, so they are kept as the bucket's
    latest message and samples rather than as part of the key. At most
    ``max_groups`` buckets are kept; the least recently seen one is dropped
    to make room.
    """

    def __init__(self, max_samples: int = 5, max_groups: int = 100):
        self._max_samples = max_samples
        self._max_groups = max_groups
        self._errors: OrderedDict[tuple[str, str | None], _ErrorBucket] = OrderedDict()

    def add(self, error: BaseException, context: str | None = None) -> None:
        key = (type(error).__name__, context)
        now = _utcnow_iso()
        bucket = self._errors.get(key)
        if bucket is None:
            while len(self._errors) >= self._max_groups:
                self._errors.popitem(last=False)
            bucket = _ErrorBucket(
                message=str(error),
                count=0,
                last_seen=now,
                samples=deque(maxlen=self._max_samples),
            )
            self._errors[key] = bucket
        else:
            self._errors.move_to_end(key)
        bucket.message = str(error)
        bucket.count += 1
        bucket.last_seen = now
        bucket.samples.append(repr(error))

    def __len__(self) -> int:
        return len(self._errors)

    def summary(self, limit: int | None = None) -> list[dict[str, Any]]:
        rows = [
            {
                "error": f"{name}: {bucket.message}",
                "count": bucket.count,
                "last_seen": bucket.last_seen,
                "context": context,
            }
            for (name, context), bucket in self._errors.items()
        ]
        rows.sort(key=lambda row: row["count"], reverse=True)
        return rows[:limit] if limit is not None else rows

    def clear(self) -> None:
        self._errors.clear()

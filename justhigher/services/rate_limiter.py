"""
Rate limiters keyed by client identity.

- FixedWindowRateLimiter: keeps request timestamps inside the trailing window
  and rejects once the window holds ``max_requests`` of them.
- SlidingWindowRateLimiter: keeps one counter per fixed window and blends the
  previous window's count in with a linearly decaying weight.

Both guard their read-modify-write sequences with a lock so a check is atomic
even when called from a worker thread.
"""

import math
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Mapping

from loguru import logger

Clock = Callable[[], float]

FORWARDING_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limit policy for one route category."""

    window: timedelta
    max_requests: int
    message: str = "Too many requests, please try again later."


DEFAULT_POLICIES: dict[str, RateLimitConfig] = {
    "newsletter": RateLimitConfig(
        window=timedelta(hours=1),
        max_requests=3,
        message="Too many subscription attempts. Please try again in an hour.",
    ),
    "search": RateLimitConfig(
        window=timedelta(minutes=15),
        max_requests=100,
        message="Too many search requests. Please try again in a few minutes.",
    ),
    "contact": RateLimitConfig(
        window=timedelta(hours=1),
        max_requests=5,
        message="Too many contact form submissions. Please try again in an hour.",
    ),
    "api": RateLimitConfig(
        window=timedelta(hours=1),
        max_requests=1000,
        message="API rate limit exceeded. Please try again later.",
    ),
    "admin": RateLimitConfig(
        window=timedelta(hours=1),
        max_requests=100,
        message="Too many admin requests. Please try again later.",
    ),
}


@dataclass
class RateLimitResult:
    """Outcome of a fixed-window admission check. Times are epoch seconds."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    checked_at: float
    message: str | None = None

    @property
    def retry_after(self) -> int:
        return max(0, math.ceil(self.reset_at - self.checked_at))

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at * 1000)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class FixedWindowRateLimiter:
    """
    Trailing-window limiter storing per-client request timestamps.

    Usage:
        limiter = FixedWindowRateLimiter(DEFAULT_POLICIES["search"])
        result = limiter.check(client_id)
        if not result.allowed:
            raise RateLimitError("search", result.limit, result.reset_at)
    """

    def __init__(
        self,
        config: RateLimitConfig,
        name: str = "default",
        clock: Clock = time.time,
    ):
        self.config = config
        self.name = name
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def check(self, client_id: str) -> RateLimitResult:
        """Admit or reject one request from ``client_id``."""
        now = self._clock()
        window = self.config.window.total_seconds()
        limit = self.config.max_requests

        with self._lock:
            recent = [t for t in self._requests.get(client_id, ()) if t > now - window]

            if len(recent) >= limit:
                self._requests[client_id] = recent
                reset_at = (min(recent) if recent else now) + window
                logger.warning(
                    f"Rate limit '{self.name}' exceeded for {client_id} "
                    f"({len(recent)}/{limit})"
                )
                return RateLimitResult(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_at=reset_at,
                    checked_at=now,
                    message=self.config.message,
                )

            recent.append(now)
            self._requests[client_id] = recent
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=limit - len(recent),
                reset_at=now + window,
                checked_at=now,
            )

    def cleanup(self, idle: timedelta = timedelta(hours=1)) -> int:
        """Drop clients whose newest request is older than ``idle``."""
        cutoff = self._clock() - idle.total_seconds()
        with self._lock:
            stale = [
                client_id
                for client_id, stamps in self._requests.items()
                if not stamps or max(stamps) < cutoff
            ]
            for client_id in stale:
                del self._requests[client_id]
        return len(stale)

    def reset(self, client_id: str) -> None:
        with self._lock:
            self._requests.pop(client_id, None)

    def clear(self) -> None:
        with self._lock:
            self._requests.clear()

    def tracked_clients(self) -> int:
        return len(self._requests)


@dataclass
class SlidingWindowResult:
    """Outcome of a sliding-window check. ``reset_time`` is epoch seconds."""

    allowed: bool
    remaining: int
    reset_time: float


class SlidingWindowRateLimiter:
    """
    Weighted two-window limiter.

    total = current_count + previous_count * (1 - elapsed / window)

    A request is admitted while ``total < max_requests``; admission adds one
    to the current window. Only the current and previous windows are kept.
    """

    def __init__(
        self,
        window: timedelta,
        max_requests: int,
        clock: Clock = time.time,
    ):
        self.window = window
        self.max_requests = max_requests
        self._clock = clock
        self._windows: dict[str, dict[int, int]] = {}
        self._lock = threading.Lock()

    def is_allowed(self, client_id: str) -> SlidingWindowResult:
        now = self._clock()
        size = self.window.total_seconds()
        current = math.floor(now / size)
        previous = current - 1
        reset_time = (current + 1) * size

        with self._lock:
            counts = self._windows.setdefault(client_id, {})
            for index in [i for i in counts if i < previous]:
                del counts[index]

            current_count = counts.get(current, 0)
            previous_count = counts.get(previous, 0)
            elapsed_fraction = (now - current * size) / size
            total = current_count + previous_count * (1 - elapsed_fraction)

            if total >= self.max_requests:
                return SlidingWindowResult(
                    allowed=False, remaining=0, reset_time=reset_time
                )

            counts[current] = current_count + 1
            return SlidingWindowResult(
                allowed=True,
                remaining=max(0, math.floor(self.max_requests - total - 1)),
                reset_time=reset_time,
            )

    def cleanup(self) -> int:
        """Drop clients with no requests in the current or previous window."""
        previous = math.floor(self._clock() / self.window.total_seconds()) - 1
        with self._lock:
            idle = [
                client_id
                for client_id, counts in self._windows.items()
                if all(index < previous for index in counts)
            ]
            for client_id in idle:
                del self._windows[client_id]
        return len(idle)

    def window_counts(self, client_id: str) -> dict[int, int]:
        return dict(self._windows.get(client_id, {}))


@dataclass
class RateLimiterRegistry:
    """
    One FixedWindowRateLimiter per policy category.

    Usage:
        registry = RateLimiterRegistry(settings.rate_limit_policies())
        result = registry.get("newsletter").check(client_id)
    """

    policies: Mapping[str, RateLimitConfig] = field(
        default_factory=lambda: dict(DEFAULT_POLICIES)
    )
    clock: Clock = time.time
    _limiters: dict[str, FixedWindowRateLimiter] = field(default_factory=dict)

    def get(self, category: str) -> FixedWindowRateLimiter:
        if category not in self._limiters:
            if category not in self.policies:
                raise KeyError(f"Unknown rate limit category: {category}")
            self._limiters[category] = FixedWindowRateLimiter(
                self.policies[category], name=category, clock=self.clock
            )
        return self._limiters[category]

    def cleanup_all(self, idle: timedelta = timedelta(hours=1)) -> int:
        removed = sum(limiter.cleanup(idle) for limiter in self._limiters.values())
        if removed:
            logger.debug(f"Rate limit cleanup dropped {removed} idle clients")
        return removed

    def clear_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.clear()

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        return {
            category: {
                "limit": limiter.config.max_requests,
                "window_seconds": limiter.config.window.total_seconds(),
                "tracked_clients": limiter.tracked_clients(),
            }
            for category, limiter in self._limiters.items()
        }


def client_identifier(headers: Mapping[str, str], fallback: str) -> str:
    """
    Resolve the client identity for rate limiting.

    Prefers the first ``X-Forwarded-For`` entry, then ``X-Real-Ip``, then
    ``CF-Connecting-Ip``; returns ``fallback`` when none is present.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in FORWARDING_HEADERS:
        value = lowered.get(name)
        if value:
            candidate = value.split(",")[0].strip()
            if candidate:
                return candidate
    return fallback

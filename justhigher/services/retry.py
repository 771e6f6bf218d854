"""
Retry executor - bounded exponential backoff around an async operation.

Delay before attempt k+1 is ``base_delay * 2**(k-1)``: no jitter, no shared
state between calls. Every exception is retried unless its type is listed in
``give_up_on``. Attempt bookkeeping is delegated to tenacity.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from justhigher.services.errors import OperationCancelledError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try an operation and how long to back off."""

    max_attempts: int = 3
    base_delay: timedelta = timedelta(seconds=1)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < timedelta(0):
            raise ValueError("base_delay must not be negative")

    def delay_for(self, attempt: int) -> timedelta:
        """Backoff to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        give_up_on: tuple[type[BaseException], ...] = (),
        cancel: asyncio.Event | None = None,
        operation_name: str | None = None,
    ) -> T:
        return await with_retry(
            operation,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            give_up_on=give_up_on,
            cancel=cancel,
            operation_name=operation_name,
        )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: timedelta = timedelta(seconds=1),
    *,
    give_up_on: tuple[type[BaseException], ...] = (),
    cancel: asyncio.Event | None = None,
    operation_name: str | None = None,
) -> T:
    """
    Run ``operation`` up to ``max_attempts`` times.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        max_attempts: Total attempts, including the first
        base_delay: Wait after the first failure; doubles after each one
        give_up_on: Exception types that are re-raised without retrying
        cancel: Optional token; when set, remaining attempts are abandoned
        operation_name: Label used in log lines and cancellation errors

    Raises:
        The last exception raised by ``operation`` once attempts run out,
        or OperationCancelledError if ``cancel`` fires first.
    """
    policy = RetryPolicy(max_attempts=max_attempts, base_delay=base_delay)
    name = operation_name or getattr(operation, "__name__", "operation")
    final = (OperationCancelledError, *give_up_on)

    def should_retry(error: BaseException) -> bool:
        return isinstance(error, Exception) and not isinstance(error, final)

    def log_retry(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0
        logger.warning(
            f"{name} failed (attempt {state.attempt_number}/{policy.max_attempts}), "
            f"retrying in {delay:.3f}s: {error}"
        )

    async def backoff(seconds: float) -> None:
        if cancel is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise OperationCancelledError(name)

    async def attempt() -> T:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(name)
        return await operation()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.base_delay.total_seconds(), min=0),
        retry=retry_if_exception(should_retry),
        sleep=backoff,
        before_sleep=log_retry,
        reraise=True,
    )
    try:
        return await retrying(attempt)
    except final:
        raise
    except Exception as e:
        logger.warning(f"{name} failed after {policy.max_attempts} attempts: {e}")
        raise

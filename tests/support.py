"""Test helpers: manually advanced clocks and test settings."""

from __future__ import annotations

from datetime import datetime, timedelta

from justhigher.settings import Settings

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    """Returns ``datetime`` values; only moves when advanced."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeEpochClock:
    """Returns epoch seconds; only moves when advanced."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides: object) -> Settings:
    """Settings for tests: in-memory DB, fast retries, admin token set."""
    values: dict[str, object] = {
        "environment": "development",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "retry_max_attempts": 2,
        "retry_base_delay_ms": 1,
        "admin_api_token": ADMIN_TOKEN,
        "site_url": "https://blog.test",
    }
    values.update(overrides)
    return Settings(**values)

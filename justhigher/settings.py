import os
from datetime import timedelta
from typing import TYPE_CHECKING, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from justhigher.services.rate_limiter import RateLimitConfig

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Site Configuration
    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    site_url: str = Field(default="https://yourdomain.com", alias="SITE_URL")
    site_name: str = Field(default="JustHigher Blog", alias="SITE_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./justhigher.db", alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Cache Configuration (seconds)
    cache_ttl_posts: int = Field(default=300, alias="CACHE_TTL_POSTS")
    cache_ttl_search: int = Field(default=60, alias="CACHE_TTL_SEARCH")
    cache_ttl_subscribers: int = Field(default=600, alias="CACHE_TTL_SUBSCRIBERS")
    cache_ttl_static: int = Field(default=3600, alias="CACHE_TTL_STATIC")
    cache_max_size: int = Field(default=1000, alias="CACHE_MAX_SIZE")
    cache_single_flight: bool = Field(default=True, alias="CACHE_SINGLE_FLIGHT")
    cache_debug: bool = Field(default=False, alias="CACHE_DEBUG")

    # Retry Configuration
    retry_max_attempts: int = Field(default=3, ge=1, alias="RETRY_MAX_ATTEMPTS")
    retry_base_delay_ms: int = Field(default=1000, ge=0, alias="RETRY_BASE_DELAY_MS")

    # Maintenance Configuration
    cleanup_interval_minutes: int = Field(default=5, alias="CLEANUP_INTERVAL_MINUTES")
    rate_limit_idle_hours: int = Field(default=1, alias="RATE_LIMIT_IDLE_HOURS")

    # Rate Limit Configuration (window in seconds, max requests per window)
    rate_limit_newsletter_window: int = Field(
        default=3600, alias="RATE_LIMIT_NEWSLETTER_WINDOW"
    )
    rate_limit_newsletter_max: int = Field(default=3, alias="RATE_LIMIT_NEWSLETTER_MAX")
    rate_limit_search_window: int = Field(default=900, alias="RATE_LIMIT_SEARCH_WINDOW")
    rate_limit_search_max: int = Field(default=100, alias="RATE_LIMIT_SEARCH_MAX")
    rate_limit_contact_window: int = Field(
        default=3600, alias="RATE_LIMIT_CONTACT_WINDOW"
    )
    rate_limit_contact_max: int = Field(default=5, alias="RATE_LIMIT_CONTACT_MAX")
    rate_limit_api_window: int = Field(default=3600, alias="RATE_LIMIT_API_WINDOW")
    rate_limit_api_max: int = Field(default=1000, alias="RATE_LIMIT_API_MAX")
    rate_limit_admin_window: int = Field(default=3600, alias="RATE_LIMIT_ADMIN_WINDOW")
    rate_limit_admin_max: int = Field(default=100, alias="RATE_LIMIT_ADMIN_MAX")
    anonymous_client_policy: Literal["isolate", "shared"] = Field(
        default="isolate", alias="ANONYMOUS_CLIENT_POLICY"
    )

    # Admin Configuration
    admin_api_token: str = Field(default="", alias="ADMIN_API_TOKEN")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (after .env is loaded)."""
        return cls.model_validate(dict(os.environ))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origin(self) -> str:
        return self.site_url if self.is_production else "*"

    @property
    def retry_base_delay(self) -> timedelta:
        return timedelta(milliseconds=self.retry_base_delay_ms)

    def rate_limit_policies(self) -> dict[str, "RateLimitConfig"]:
        """Rate limit policy per route category."""
        from justhigher.services.rate_limiter import DEFAULT_POLICIES, RateLimitConfig

        policies: dict[str, RateLimitConfig] = {}
        for category, default in DEFAULT_POLICIES.items():
            window = getattr(self, f"rate_limit_{category}_window")
            max_requests = getattr(self, f"rate_limit_{category}_max")
            policies[category] = RateLimitConfig(
                window=timedelta(seconds=window),
                max_requests=max_requests,
                message=default.message,
            )
        return policies


global_settings = Settings.from_env()

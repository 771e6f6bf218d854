"""
BlogService - cached, retried access to posts and subscribers.

Reads go through ``CacheManager.get_or_load`` with a retried backend call as
the loader. Writes are retried and then invalidate every cache entry derived
from the data they touched, so a caller's next read sees its own write.
"""

import asyncio
import math
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, ContextManager, TypeVar

from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from justhigher.datastore.engine import Database
from justhigher.datastore.repositories import (
    PostRepository,
    SubscriberRepository,
    backend_errors,
)
from justhigher.models import Post, Subscriber
from justhigher.services.cache import CacheManager
from justhigher.services.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from justhigher.services.monitoring import PerformanceMonitor
from justhigher.services.retry import RetryPolicy
from justhigher.validation import is_valid_email, normalize_email, sanitize_search_query

T = TypeVar("T")

# Failures that a retry cannot fix.
NON_RETRYABLE: tuple[type[BaseException], ...] = (
    ValidationError,
    ConflictError,
    NotFoundError,
)

# Columns that may not be set to NULL through an update.
REQUIRED_POST_FIELDS = frozenset({"title", "content", "slug", "tags"})

WORDS_PER_MINUTE = 200


@dataclass(frozen=True)
class CacheTTLs:
    """TTL per read category."""

    posts: timedelta = timedelta(minutes=5)
    search: timedelta = timedelta(minutes=1)
    subscribers: timedelta = timedelta(minutes=10)
    static: timedelta = timedelta(hours=1)


class CacheKeys:
    """Cache key builders. Every argument that changes the result is in the key."""

    POSTS_PREFIX = "posts:"
    SEARCH_PREFIX = "search:"
    SUBSCRIBERS_PREFIX = "subscribers:"

    @staticmethod
    def published_posts(limit: int | None = None, offset: int = 0) -> str:
        return f"posts:published:{limit or 'all'}:{offset or 0}"

    @staticmethod
    def post_by_slug(slug: str) -> str:
        return f"posts:slug:{slug}"

    @staticmethod
    def post_by_id(post_id: str) -> str:
        return f"posts:id:{post_id}"

    @staticmethod
    def all_posts(limit: int | None = None) -> str:
        return f"posts:all:{limit or 'all'}"

    @staticmethod
    def search_posts(query: str, limit: int | None = None) -> str:
        return f"search:{query.strip().lower()}:{limit or 'all'}"

    @staticmethod
    def subscriber_count() -> str:
        return "subscribers:count"

    @staticmethod
    def recent_subscribers(limit: int) -> str:
        return f"subscribers:recent:{limit}"


def estimate_reading_time(content: str) -> int:
    """Minutes to read ``content`` at 200 words per minute, at least 1."""
    words = len(content.split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


class BlogService:
    """
    Data-access facade composing the cache and the retry executor.

    Usage:
        blog = BlogService(database, cache, RetryPolicy())
        posts = await blog.get_published_posts(limit=10)
        await blog.update_post(post_id, {"title": "New title"})
        posts = await blog.get_published_posts(limit=10)  # sees the new title
    """

    def __init__(
        self,
        database: Database,
        cache: CacheManager,
        retry_policy: RetryPolicy | None = None,
        ttls: CacheTTLs | None = None,
        monitor: PerformanceMonitor | None = None,
    ):
        self.database = database
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.ttls = ttls or CacheTTLs()
        self.monitor = monitor

    # Reads

    async def get_published_posts(
        self,
        limit: int | None = None,
        offset: int = 0,
        cancel: asyncio.Event | None = None,
    ) -> list[Post]:
        return await self._cached_read(
            "get_published_posts",
            CacheKeys.published_posts(limit, offset),
            lambda s: PostRepository(s).list_published(limit, offset),
            self.ttls.posts,
            cancel,
        )

    async def get_post_by_slug(
        self, slug: str, cancel: asyncio.Event | None = None
    ) -> Post | None:
        return await self._cached_read(
            "get_post_by_slug",
            CacheKeys.post_by_slug(slug),
            lambda s: PostRepository(s).get_published_by_slug(slug),
            self.ttls.posts,
            cancel,
        )

    async def search_posts(
        self,
        query: str,
        limit: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[Post]:
        query = sanitize_search_query(query)
        if not query:
            return []

        return await self._cached_read(
            "search_posts",
            CacheKeys.search_posts(query, limit),
            lambda s: PostRepository(s).search(query, limit),
            self.ttls.search,
            cancel,
        )

    async def get_post_by_id(
        self, post_id: str, cancel: asyncio.Event | None = None
    ) -> Post | None:
        return await self._cached_read(
            "get_post_by_id",
            CacheKeys.post_by_id(post_id),
            lambda s: PostRepository(s).get_by_id(post_id),
            self.ttls.posts,
            cancel,
        )

    async def get_all_posts(
        self, limit: int | None = None, cancel: asyncio.Event | None = None
    ) -> list[Post]:
        return await self._cached_read(
            "get_all_posts",
            CacheKeys.all_posts(limit),
            lambda s: PostRepository(s).list_all(limit),
            self.ttls.posts,
            cancel,
        )

    async def get_subscriber_count(self, cancel: asyncio.Event | None = None) -> int:
        return await self._cached_read(
            "get_subscriber_count",
            CacheKeys.subscriber_count(),
            lambda s: SubscriberRepository(s).count_active(),
            self.ttls.subscribers,
            cancel,
        )

    async def get_recent_subscribers(
        self, limit: int = 10, cancel: asyncio.Event | None = None
    ) -> list[Subscriber]:
        return await self._cached_read(
            "get_recent_subscribers",
            CacheKeys.recent_subscribers(limit),
            lambda s: SubscriberRepository(s).recent_active(limit),
            self.ttls.subscribers,
            cancel,
        )

    # Writes

    async def create_post(
        self,
        post: BaseModel | dict[str, Any],
        cancel: asyncio.Event | None = None,
    ) -> Post:
        values = _as_values(post, exclude_unset=False)
        values["reading_time"] = estimate_reading_time(values["content"])

        created = await self._write(
            "create_post", lambda s: PostRepository(s).create(values), cancel
        )
        await self._invalidate_posts()
        logger.info(f"Post created: {created.slug}")
        return created

    async def update_post(
        self,
        post_id: str,
        updates: BaseModel | dict[str, Any],
        cancel: asyncio.Event | None = None,
    ) -> Post:
        values = {
            name: value
            for name, value in _as_values(updates, exclude_unset=True).items()
            if value is not None or name not in REQUIRED_POST_FIELDS
        }
        if values.get("content"):
            values["reading_time"] = estimate_reading_time(values["content"])

        updated = await self._write(
            "update_post", lambda s: PostRepository(s).update(post_id, values), cancel
        )
        await self._invalidate_posts()
        logger.info(f"Post updated: {updated.slug}")
        return updated

    async def delete_post(
        self, post_id: str, cancel: asyncio.Event | None = None
    ) -> None:
        await self._write(
            "delete_post", lambda s: PostRepository(s).delete(post_id), cancel
        )
        await self._invalidate_posts()
        logger.info(f"Post deleted: {post_id}")

    async def subscribe(
        self,
        email: str,
        source: str = "website",
        cancel: asyncio.Event | None = None,
    ) -> Subscriber:
        """
        Add ``email`` to the newsletter.

        The address is trimmed and lowercased before storage, so
        ``" A@B.com "`` and ``"a@b.com"`` are the same subscriber.

        Raises:
            ValidationError: The address is malformed
            AlreadySubscribedError: The address is already subscribed
        """
        normalized = normalize_email(email)
        if not is_valid_email(normalized):
            raise ValidationError(
                "Invalid email format",
                details=[{"field": "email", "message": "Invalid email format"}],
            )

        subscriber = await self._write(
            "subscribe",
            lambda s: SubscriberRepository(s).add(normalized, source or "website"),
            cancel,
        )
        await self.cache.invalidate(CacheKeys.SUBSCRIBERS_PREFIX)
        logger.info(f"New subscriber from {subscriber.source}")
        return subscriber

    async def clear_cache(self) -> None:
        await self.cache.clear()
        logger.info("Blog cache cleared")

    # Internals

    async def _cached_read(
        self,
        name: str,
        key: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        ttl: timedelta,
        cancel: asyncio.Event | None,
    ) -> T:
        with self._timer(name):
            return await self.cache.get_or_load(
                key,
                lambda: self._retried(name, work, cancel),
                ttl=ttl,
                cancel=cancel,
            )

    async def _write(
        self,
        name: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        cancel: asyncio.Event | None,
    ) -> T:
        with self._timer(name):
            return await self._retried(name, work, cancel)

    async def _retried(
        self,
        name: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        cancel: asyncio.Event | None,
    ) -> T:
        async def attempt() -> T:
            with backend_errors(name):
                async with self.database.session() as session:
                    return await work(session)

        return await self.retry_policy.run(
            attempt,
            give_up_on=NON_RETRYABLE,
            cancel=cancel,
            operation_name=name,
        )

    async def _invalidate_posts(self) -> None:
        await self.cache.invalidate(CacheKeys.POSTS_PREFIX)
        await self.cache.invalidate(CacheKeys.SEARCH_PREFIX)

    def _timer(self, name: str) -> ContextManager[None]:
        if self.monitor is None:
            return nullcontext()
        return self.monitor.timer(f"blog.{name}")


def _as_values(data: BaseModel | dict[str, Any], exclude_unset: bool) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=exclude_unset)
    return dict(data)

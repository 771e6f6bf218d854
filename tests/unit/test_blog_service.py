"""Tests for BlogService against an in-memory SQLite database."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from justhigher.datastore.engine import Database
from justhigher.services.blog import BlogService, estimate_reading_time
from justhigher.services.cache import CacheManager
from justhigher.services.errors import (
    AlreadySubscribedError,
    ConflictError,
    LoadError,
    NotFoundError,
    ValidationError,
)
from justhigher.services.monitoring import PerformanceMonitor
from justhigher.services.retry import RetryPolicy
from tests.support import FakeClock

PUBLISHED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _post(slug: str, title: str = "A title", published: bool = True, **extra):
    data = {
        "title": title,
        "content": f"Some content for {slug} that is long enough.",
        "slug": slug,
        "tags": ["python"],
        "published_at": PUBLISHED if published else None,
    }
    data.update(extra)
    return data


@pytest.fixture
def blog(database: Database) -> BlogService:
    """BlogService with fast retries and a performance monitor."""
    return BlogService(
        database,
        CacheManager(),
        retry_policy=RetryPolicy(max_attempts=2, base_delay=timedelta(0)),
        monitor=PerformanceMonitor(),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestReads:
    """Cached read operations."""

    @pytest.mark.asyncio
    async def test_published_posts_exclude_drafts(self, blog: BlogService) -> None:
        """Drafts never appear in the published listing."""
        await blog.create_post(_post("live"))
        await blog.create_post(_post("draft", published=False))

        posts = await blog.get_published_posts()
        assert [p.slug for p in posts] == ["live"]

    @pytest.mark.asyncio
    async def test_published_posts_newest_first_with_paging(
        self, blog: BlogService
    ) -> None:
        """Published posts are ordered by publish date and honor limit/offset."""
        for day in range(1, 4):
            await blog.create_post(
                _post(f"post-{day}", published_at=PUBLISHED + timedelta(days=day))
            )

        page = await blog.get_published_posts(limit=2, offset=1)
        assert [p.slug for p in page] == ["post-2", "post-1"]

    @pytest.mark.asyncio
    async def test_reads_are_cached(self, blog: BlogService) -> None:
        """A second read is served from the cache."""
        await blog.create_post(_post("cached"))

        await blog.get_post_by_slug("cached")
        await blog.get_post_by_slug("cached")

        assert blog.cache.get_stats().hits == 1

    @pytest.mark.asyncio
    async def test_missing_slug_returns_none(self, blog: BlogService) -> None:
        """Unknown or draft slugs read as None."""
        await blog.create_post(_post("draft", published=False))
        assert await blog.get_post_by_slug("draft") is None
        assert await blog.get_post_by_slug("nope") is None

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, blog: BlogService) -> None:
        """Search matches title or content regardless of case."""
        await blog.create_post(_post("py", title="Learning Python"))
        await blog.create_post(_post("rs", title="Rust notes", content="Nothing relevant here."))

        results = await blog.search_posts("PYTHON")
        assert [p.slug for p in results] == ["py"]

    @pytest.mark.asyncio
    async def test_blank_search_skips_backend(self, blog: BlogService) -> None:
        """A blank query returns [] without touching cache or database."""
        assert await blog.search_posts("   ") == []
        stats = blog.cache.get_stats()
        assert stats.hits == 0
        assert stats.misses == 0

    @pytest.mark.asyncio
    async def test_search_query_is_sanitized(self, blog: BlogService) -> None:
        """Markup characters are stripped and the sanitized form is the cache key."""
        await blog.create_post(_post("py", title="Learning Python"))

        results = await blog.search_posts("<python>")
        again = await blog.search_posts("python")

        assert [p.slug for p in results] == ["py"]
        assert [p.slug for p in again] == ["py"]
        assert blog.cache.get_stats().hits == 1

    @pytest.mark.asyncio
    async def test_search_treats_wildcards_literally(self, blog: BlogService) -> None:
        """LIKE wildcards in the query are escaped."""
        await blog.create_post(_post("pct", title="100% coverage"))
        await blog.create_post(_post("other", title="Other post"))

        assert [p.slug for p in await blog.search_posts("%")] == ["pct"]

    @pytest.mark.asyncio
    async def test_operations_are_timed(self, blog: BlogService) -> None:
        """Each facade call records a duration."""
        await blog.get_published_posts()
        assert blog.monitor.get_stats("blog.get_published_posts")["count"] == 1


# ---------------------------------------------------------------------------
# Writes and invalidation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestWrites:
    """Writes invalidate the entries derived from them."""

    @pytest.mark.asyncio
    async def test_update_is_visible_on_next_read(self, blog: BlogService) -> None:
        """Read, update, read again: the second read sees the new title."""
        created = await blog.create_post(_post("hello", title="Old title"))
        before = await blog.get_published_posts(limit=10)
        assert before[0].title == "Old title"

        await blog.update_post(created.id, {"title": "New title"})

        after = await blog.get_published_posts(limit=10)
        assert after[0].title == "New title"
        assert (await blog.get_post_by_slug("hello")).title == "New title"

    @pytest.mark.asyncio
    async def test_create_invalidates_search(self, blog: BlogService) -> None:
        """A new post shows up in a previously cached search."""
        assert await blog.search_posts("kafka") == []
        await blog.create_post(_post("kafka", title="Kafka in practice"))
        assert len(await blog.search_posts("kafka")) == 1

    @pytest.mark.asyncio
    async def test_delete_removes_post(self, blog: BlogService) -> None:
        """A deleted post disappears from cached listings."""
        created = await blog.create_post(_post("gone"))
        assert len(await blog.get_published_posts()) == 1

        await blog.delete_post(created.id)
        assert await blog.get_published_posts() == []

    @pytest.mark.asyncio
    async def test_reading_time(self, blog: BlogService) -> None:
        """Reading time is derived from content on create and update."""
        created = await blog.create_post(_post("words", content="word " * 450))
        assert created.reading_time == 3

        updated = await blog.update_post(created.id, {"content": "word " * 50})
        assert updated.reading_time == 1
        assert estimate_reading_time("") == 1

    @pytest.mark.asyncio
    async def test_update_missing_post(self, blog: BlogService) -> None:
        """Updating an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await blog.update_post("missing", {"title": "x"})

    @pytest.mark.asyncio
    async def test_delete_missing_post(self, blog: BlogService) -> None:
        """Deleting an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await blog.delete_post("missing")

    @pytest.mark.asyncio
    async def test_duplicate_slug(self, blog: BlogService) -> None:
        """A second post with the same slug is a conflict."""
        await blog.create_post(_post("same"))
        with pytest.raises(ConflictError):
            await blog.create_post(_post("same"))


# ---------------------------------------------------------------------------
# Subscribers
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestSubscribe:
    """Newsletter subscription."""

    @pytest.mark.asyncio
    async def test_duplicate_after_normalization(self, blog: BlogService) -> None:
        """Addresses differing only in case and whitespace are one subscriber."""
        first = await blog.subscribe(" A@B.com ")
        assert first.email == "a@b.com"

        with pytest.raises(AlreadySubscribedError):
            await blog.subscribe("a@b.com")

    @pytest.mark.asyncio
    async def test_invalid_email(self, blog: BlogService) -> None:
        """Malformed addresses are rejected before the backend."""
        with pytest.raises(ValidationError):
            await blog.subscribe("nope")

    @pytest.mark.asyncio
    async def test_subscribe_invalidates_count(self, blog: BlogService) -> None:
        """The cached subscriber count reflects a new subscriber."""
        assert await blog.get_subscriber_count() == 0
        await blog.subscribe("reader@mail.com", source="footer")

        assert await blog.get_subscriber_count() == 1
        recent = await blog.get_recent_subscribers(5)
        assert recent[0].source == "footer"


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestBackendFailure:
    """Backend outages fall back to stale data or surface LoadError."""

    @pytest.mark.asyncio
    async def test_stale_posts_served_during_outage(
        self, database: Database, clock: FakeClock
    ) -> None:
        """Once the database is gone, an expired listing is still served."""
        cache = CacheManager(clock=clock)
        blog = BlogService(
            database, cache, RetryPolicy(max_attempts=2, base_delay=timedelta(0))
        )
        await blog.create_post(_post("kept"))
        await blog.get_published_posts()

        clock.advance(minutes=10)
        await database.close()

        posts = await blog.get_published_posts()
        assert [p.slug for p in posts] == ["kept"]
        assert cache.get_stats().stale_hits == 1

    @pytest.mark.asyncio
    async def test_load_error_without_cache(self, database: Database) -> None:
        """With nothing cached, an outage raises LoadError after retries."""
        blog = BlogService(
            database,
            CacheManager(),
            RetryPolicy(max_attempts=2, base_delay=timedelta(0)),
        )
        await database.close()

        with pytest.raises(LoadError):
            await blog.get_subscriber_count()

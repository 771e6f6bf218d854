"""
Repository layer - data access for posts and subscribers.

Every SQLAlchemy failure is re-raised as ``BackendError`` so callers never
see driver exceptions; a duplicate subscriber email becomes
``AlreadySubscribedError``.
"""

from contextlib import contextmanager
from typing import Any, Iterator

from loguru import logger
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from justhigher.datastore.models import PostDB, SubscriberDB, utcnow
from justhigher.models import Post, Subscriber
from justhigher.services.errors import (
    AlreadySubscribedError,
    BackendError,
    ConflictError,
    NotFoundError,
)

DEFAULT_PAGE_SIZE = 10


@contextmanager
def backend_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy exceptions raised in the block into BackendError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Backend error during {operation}: {e}")
        raise BackendError(f"Failed to {operation}: {e}", operation=operation) from e


class PostRepository:
    """Post Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_published(
        self, limit: int | None = None, offset: int = 0
    ) -> list[Post]:
        """Published posts, newest first. An offset without a limit pages by 10."""
        stmt = (
            select(PostDB)
            .where(PostDB.published_at.is_not(None))
            .order_by(PostDB.published_at.desc())
        )
        if offset:
            stmt = stmt.offset(offset).limit(limit or DEFAULT_PAGE_SIZE)
        elif limit:
            stmt = stmt.limit(limit)

        with backend_errors("fetch posts"):
            result = await self.session.execute(stmt)
        return [Post.model_validate(row) for row in result.scalars().all()]

    async def get_published_by_slug(self, slug: str) -> Post | None:
        stmt = select(PostDB).where(
            PostDB.slug == slug, PostDB.published_at.is_not(None)
        )
        with backend_errors("fetch post by slug"):
            row = (await self.session.execute(stmt)).scalar_one_or_none()
        return Post.model_validate(row) if row else None

    async def get_by_id(self, post_id: str) -> Post | None:
        with backend_errors("fetch post by id"):
            row = await self.session.get(PostDB, post_id)
        return Post.model_validate(row) if row else None

    async def list_all(self, limit: int | None = None) -> list[Post]:
        """All posts including drafts, newest created first."""
        stmt = select(PostDB).order_by(PostDB.created_at.desc())
        if limit:
            stmt = stmt.limit(limit)

        with backend_errors("fetch all posts"):
            result = await self.session.execute(stmt)
        return [Post.model_validate(row) for row in result.scalars().all()]

    async def search(self, query: str, limit: int | None = None) -> list[Post]:
        """Case-insensitive substring match on title or content, published only."""
        stmt = (
            select(PostDB)
            .where(
                PostDB.published_at.is_not(None),
                or_(
                    PostDB.title.icontains(query, autoescape=True),
                    PostDB.content.icontains(query, autoescape=True),
                ),
            )
            .order_by(PostDB.published_at.desc())
        )
        if limit:
            stmt = stmt.limit(limit)

        with backend_errors("search posts"):
            result = await self.session.execute(stmt)
        return [Post.model_validate(row) for row in result.scalars().all()]

    async def create(self, values: dict[str, Any]) -> Post:
        row = PostDB(**values)
        with backend_errors("create post"):
            self.session.add(row)
            await self._flush_unique(row.slug)
            await self.session.refresh(row)
        logger.debug(f"Created post: {row.slug}")
        return Post.model_validate(row)

    async def update(self, post_id: str, updates: dict[str, Any]) -> Post:
        with backend_errors("update post"):
            row = await self.session.get(PostDB, post_id)
            if row is None:
                raise NotFoundError(f"Post not found: {post_id}", service_id="posts")

            for name, value in updates.items():
                setattr(row, name, value)
            row.updated_at = utcnow()
            await self._flush_unique(row.slug)
            await self.session.refresh(row)
        logger.debug(f"Updated post: {row.slug}")
        return Post.model_validate(row)

    async def _flush_unique(self, slug: str) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"A post with slug '{slug}' already exists", service_id="posts"
            ) from e

    async def delete(self, post_id: str) -> None:
        with backend_errors("delete post"):
            result = await self.session.execute(
                delete(PostDB).where(PostDB.id == post_id)
            )
        if not result.rowcount:
            raise NotFoundError(f"Post not found: {post_id}", service_id="posts")
        logger.debug(f"Deleted post: {post_id}")


class SubscriberRepository:
    """Subscriber Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, email: str, source: str = "website") -> Subscriber:
        """Insert an active subscriber. ``email`` must already be normalized."""
        row = SubscriberDB(email=email, source=source, active=True)
        with backend_errors("subscribe"):
            self.session.add(row)
            try:
                await self.session.flush()
            except IntegrityError as e:
                raise AlreadySubscribedError(email) from e
            await self.session.refresh(row)
        return Subscriber.model_validate(row)

    async def count_active(self) -> int:
        stmt = select(func.count()).select_from(SubscriberDB).where(
            SubscriberDB.active.is_(True)
        )
        with backend_errors("get subscriber count"):
            count = (await self.session.execute(stmt)).scalar_one()
        return count or 0

    async def recent_active(self, limit: int = 10) -> list[Subscriber]:
        stmt = (
            select(SubscriberDB)
            .where(SubscriberDB.active.is_(True))
            .order_by(SubscriberDB.subscribed_at.desc())
            .limit(limit)
        )
        with backend_errors("fetch subscribers"):
            result = await self.session.execute(stmt)
        return [Subscriber.model_validate(row) for row in result.scalars().all()]

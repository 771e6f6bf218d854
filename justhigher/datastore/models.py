"""
Database models.
SQLAlchemy 2.0+ declarative mappings for posts and newsletter subscribers.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models."""

    pass


class PostDB(Base):
    """Blog posts. ``published_at`` is NULL for drafts."""

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    meta_description: Mapped[str | None] = mapped_column(String(160), nullable=True)
    reading_time: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (Index("idx_posts_created", "created_at"),)

    def __repr__(self) -> str:
        return f"<Post(slug={self.slug}, title={self.title[:50]})>"


class SubscriberDB(Base):
    """Newsletter subscribers. ``email`` is stored trimmed and lowercased."""

    __tablename__ = "subscribers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(
        String(254), unique=True, nullable=False, index=True
    )
    subscribed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    source: Mapped[str] = mapped_column(String(100), default="website", nullable=False)

    __table_args__ = (Index("idx_subscribers_active_at", "active", "subscribed_at"),)

    def __repr__(self) -> str:
        return f"<Subscriber(email={self.email}, active={self.active})>"

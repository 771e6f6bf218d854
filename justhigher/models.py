"""
Domain types returned by the data-access layer.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Post(BaseModel):
    """A blog post as served to readers and the admin API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    content: str
    slug: str
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    tags: list[str] = Field(default_factory=list)
    meta_description: str | None = None
    reading_time: int | None = None

    @property
    def is_published(self) -> bool:
        return self.published_at is not None


class Subscriber(BaseModel):
    """A newsletter subscriber."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    subscribed_at: datetime
    active: bool = True
    source: str = "website"

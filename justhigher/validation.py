"""
Request validation models and input sanitizers.
"""

import html
import re
from datetime import datetime
from typing import Annotated, Any, Iterable, Mapping

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"
DANGEROUS_QUERY = re.compile(r"<script|javascript:|data:|vbscript:", re.IGNORECASE)

DISPOSABLE_DOMAINS = frozenset(
    {
        "10minutemail.com",
        "tempmail.org",
        "guerrillamail.com",
        "mailinator.com",
        "throwaway.email",
    }
)

SPAM_PATTERNS = (
    re.compile(r"test@test\.com", re.IGNORECASE),
    re.compile(r"admin@admin\.com", re.IGNORECASE),
    re.compile(r"noreply@", re.IGNORECASE),
    re.compile(r"no-reply@", re.IGNORECASE),
    re.compile(r"\+.*\+.*@"),
    re.compile(r"\.{2,}"),
)

SPAM_DOMAINS = frozenset({"example.com", "test.com", "spam.com", "fake.com"})


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def check_email(email: str) -> str:
    """Normalize and validate an address; raises ValueError with a user message."""
    email = normalize_email(email)
    if not email:
        raise ValueError("Email is required")
    if len(email) > 254:
        raise ValueError("Email address is too long")
    if not is_valid_email(email):
        raise ValueError("Please enter a valid email address")
    if email.rsplit("@", 1)[1] in DISPOSABLE_DOMAINS:
        raise ValueError("Disposable email addresses are not allowed")
    return email


def is_spam_email(email: str) -> bool:
    """Heuristic block list for obviously fake or throwaway addresses."""
    if any(pattern.search(email) for pattern in SPAM_PATTERNS):
        return True

    _, _, domain = email.partition("@")
    if not domain:
        return True
    return domain.lower() in SPAM_DOMAINS


def sanitize_search_query(query: str) -> str:
    query = query.strip()
    query = re.sub(r"[<>]", "", query)
    query = re.sub(r"javascript:|data:|vbscript:", "", query, flags=re.IGNORECASE)
    return query[:100]


def escape_html(value: str) -> str:
    return html.escape(value, quote=True)


class SubscribeRequest(BaseModel):
    """POST /api/newsletter body."""

    email: str
    source: Annotated[str, StringConstraints(max_length=100)] = "website"

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return check_email(value)

    @field_validator("source", mode="before")
    @classmethod
    def _default_source(cls, value: Any) -> Any:
        return "website" if value is None else value


class SearchParams(BaseModel):
    """GET /api/search query parameters."""

    q: Annotated[str, StringConstraints(min_length=1, max_length=100)]
    limit: int = Field(default=10, ge=1, le=50)

    @field_validator("q")
    @classmethod
    def _check_query(cls, value: str) -> str:
        if DANGEROUS_QUERY.search(value):
            raise ValueError("Invalid characters in search query")
        return value


def _check_title(value: str) -> str:
    if not value.strip():
        raise ValueError("Title cannot be empty or only whitespace")
    return value


Title = Annotated[
    str, StringConstraints(min_length=1, max_length=200), AfterValidator(_check_title)
]
Content = Annotated[str, StringConstraints(min_length=10, max_length=50000)]
Slug = Annotated[
    str, StringConstraints(min_length=1, max_length=100, pattern=SLUG_PATTERN)
]
Tag = Annotated[str, StringConstraints(min_length=1, max_length=50)]
MetaDescription = Annotated[str, StringConstraints(max_length=160)]


class PostCreate(BaseModel):
    """Admin payload for a new post."""

    model_config = ConfigDict(extra="forbid")

    title: Title
    content: Content
    slug: Slug
    tags: list[Tag] = Field(default_factory=list, max_length=10)
    meta_description: MetaDescription | None = None
    published_at: datetime | None = None


class PostUpdate(BaseModel):
    """Admin payload for a partial post update. Only set fields are applied."""

    model_config = ConfigDict(extra="forbid")

    title: Title | None = None
    content: Content | None = None
    slug: Slug | None = None
    tags: list[Tag] | None = Field(default=None, max_length=10)
    meta_description: MetaDescription | None = None
    published_at: datetime | None = None


def format_validation_errors(error: PydanticValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors into ``{field, message}`` pairs."""
    return format_error_details(error.errors())


def format_error_details(
    issues: Iterable[Mapping[str, Any]], skip_locations: Iterable[str] = ()
) -> list[dict[str, str]]:
    """
    Flatten pydantic-style error dicts. Location parts named in
    ``skip_locations`` (e.g. ``"body"``, ``"query"``) are dropped from the
    field path.
    """
    skipped = set(skip_locations)
    details = []
    for issue in issues:
        message = issue["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        details.append(
            {
                "field": ".".join(
                    str(part) for part in issue["loc"] if part not in skipped
                ),
                "message": message,
            }
        )
    return details

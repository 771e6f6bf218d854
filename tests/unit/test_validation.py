"""Tests for request models and sanitizers."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from justhigher.validation import (
    PostCreate,
    PostUpdate,
    SearchParams,
    SubscribeRequest,
    escape_html,
    format_validation_errors,
    is_spam_email,
    sanitize_search_query,
)


@pytest.mark.unit
class TestSubscribeRequest:
    """Newsletter payload validation."""

    def test_normalizes_email_and_defaults_source(self) -> None:
        """Email is trimmed and lowercased; source defaults to website."""
        payload = SubscribeRequest.model_validate({"email": "  Reader@Mail.COM "})
        assert payload.email == "reader@mail.com"
        assert payload.source == "website"

    def test_null_source_becomes_website(self) -> None:
        """An explicit null source falls back to the default."""
        payload = SubscribeRequest.model_validate({"email": "a@mail.com", "source": None})
        assert payload.source == "website"

    @pytest.mark.parametrize(
        ("email", "message"),
        [
            ("", "Email is required"),
            ("not-an-email", "Please enter a valid email address"),
            ("someone@mailinator.com", "Disposable email addresses are not allowed"),
        ],
    )
    def test_rejects_bad_email(self, email: str, message: str) -> None:
        """Bad addresses fail with a readable message on the email field."""
        with pytest.raises(PydanticValidationError) as exc_info:
            SubscribeRequest.model_validate({"email": email})

        details = format_validation_errors(exc_info.value)
        assert details == [{"field": "email", "message": message}]

    def test_missing_email(self) -> None:
        """A body without email reports the field."""
        with pytest.raises(PydanticValidationError) as exc_info:
            SubscribeRequest.model_validate({})
        assert format_validation_errors(exc_info.value)[0]["field"] == "email"


@pytest.mark.unit
class TestSearchParams:
    """Search parameter bounds."""

    def test_defaults(self) -> None:
        """limit defaults to 10."""
        assert SearchParams.model_validate({"q": "python"}).limit == 10

    @pytest.mark.parametrize(
        "params",
        [
            {"q": "x" * 101},
            {"q": "<script>alert(1)</script>"},
            {"q": "JavaScript:void(0)"},
            {"q": "ok", "limit": 0},
            {"q": "ok", "limit": 51},
            {"q": "ok", "limit": "abc"},
        ],
    )
    def test_rejects(self, params: dict) -> None:
        """Out-of-range or dangerous parameters are rejected."""
        with pytest.raises(PydanticValidationError):
            SearchParams.model_validate(params)

    def test_numeric_string_limit(self) -> None:
        """Query-string limits are coerced."""
        assert SearchParams.model_validate({"q": "ok", "limit": "25"}).limit == 25


@pytest.mark.unit
class TestPostModels:
    """Admin post payloads."""

    def test_valid_post(self) -> None:
        """A complete post validates."""
        post = PostCreate.model_validate(
            {
                "title": "Hello",
                "content": "Long enough content here.",
                "slug": "hello-world",
                "tags": ["python"],
                "published_at": "2024-01-01T00:00:00Z",
            }
        )
        assert post.published_at is not None

    @pytest.mark.parametrize(
        "override",
        [
            {"title": "   "},
            {"content": "short"},
            {"slug": "Not A Slug"},
            {"tags": ["t"] * 11},
            {"meta_description": "x" * 161},
            {"unexpected": True},
        ],
    )
    def test_invalid_post(self, override: dict) -> None:
        """Each constraint is enforced."""
        data = {"title": "Hello", "content": "Long enough content.", "slug": "hello"}
        data.update(override)
        with pytest.raises(PydanticValidationError):
            PostCreate.model_validate(data)

    def test_update_tracks_set_fields(self) -> None:
        """Only provided fields are dumped with exclude_unset."""
        update = PostUpdate.model_validate({"title": "New"})
        assert update.model_dump(exclude_unset=True) == {"title": "New"}


@pytest.mark.unit
class TestHelpers:
    """Spam heuristic and sanitizers."""

    @pytest.mark.parametrize(
        "email",
        [
            "test@test.com",
            "noreply@company.io",
            "a+b+c@mail.com",
            "first..last@mail.com",
            "someone@example.com",
        ],
    )
    def test_spam(self, email: str) -> None:
        """Known throwaway patterns and domains are flagged."""
        assert is_spam_email(email)

    def test_not_spam(self) -> None:
        """A normal address passes."""
        assert not is_spam_email("reader@mail.com")

    def test_sanitize_search_query(self) -> None:
        """Angle brackets and script schemes are stripped; length capped at 100."""
        assert sanitize_search_query("  <b>python</b> javascript:x ") == "bpython/b x"
        assert len(sanitize_search_query("y" * 300)) == 100

    def test_escape_html(self) -> None:
        """HTML special characters are escaped."""
        assert escape_html("<a href=\"x\">'&'</a>") == (
            "&lt;a href=&quot;x&quot;&gt;&#x27;&amp;&#x27;&lt;/a&gt;"
        )

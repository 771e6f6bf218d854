"""Tests for sitemap entry rendering."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from justhigher.api.sitemap import SitemapEntry, render_sitemap


@pytest.mark.unit
class TestSitemapEntry:
    """XML rendering of sitemap URLs."""

    def test_url_is_escaped(self) -> None:
        """Markup-significant characters in a URL are entity-encoded."""
        entry = SitemapEntry(
            "https://blog.test/search?q=a&b=<c>",
            datetime(2024, 1, 1, tzinfo=timezone.utc),
            "weekly",
            0.5,
        )

        xml = entry.to_xml()

        assert "<loc>https://blog.test/search?q=a&amp;b=&lt;c&gt;</loc>" in xml
        assert "<lastmod>2024-01-01T00:00:00+00:00</lastmod>" in xml
        assert "<priority>0.5</priority>" in xml

    def test_render_wraps_entries(self) -> None:
        """The document declares the sitemap namespace around every entry."""
        entry = SitemapEntry(
            "https://blog.test", datetime(2024, 1, 1, tzinfo=timezone.utc), "daily", 1.0
        )

        document = render_sitemap([entry])

        assert document.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert "sitemaps.org/schemas/sitemap/0.9" in document
        assert document.count("<url>") == 1

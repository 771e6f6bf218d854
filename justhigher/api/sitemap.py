"""
sitemap.xml for the public site.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response
from loguru import logger

from justhigher.api.dependencies import get_blog, get_container
from justhigher.services.blog import BlogService
from justhigher.validation import escape_html

router = APIRouter(tags=["sitemap"])


@dataclass
class SitemapEntry:
    url: str
    last_modified: datetime
    change_frequency: str
    priority: float

    def to_xml(self) -> str:
        return (
            "  <url>\n"
            f"    <loc>{escape_html(self.url)}</loc>\n"
            f"    <lastmod>{self.last_modified.isoformat()}</lastmod>\n"
            f"    <changefreq>{self.change_frequency}</changefreq>\n"
            f"    <priority>{self.priority:.1f}</priority>\n"
            "  </url>"
        )


async def build_sitemap(base_url: str, blog: BlogService) -> list[SitemapEntry]:
    """Home, /search and every published post. Home alone if posts fail to load."""
    base_url = base_url.rstrip("/")
    now = datetime.now(timezone.utc)
    home = SitemapEntry(base_url, now, "daily", 1.0)

    try:
        posts = await blog.get_published_posts()
    except Exception as e:
        logger.error(f"Error generating sitemap: {e}")
        return [home]

    entries = [home, SitemapEntry(f"{base_url}/search", now, "weekly", 0.5)]
    entries.extend(
        SitemapEntry(f"{base_url}/{post.slug}", post.updated_at, "weekly", 0.8)
        for post in posts
    )
    return entries


def render_sitemap(entries: list[SitemapEntry]) -> str:
    urls = "\n".join(entry.to_xml() for entry in entries)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        f"{urls}\n"
        "</urlset>\n"
    )


@router.get("/sitemap.xml")
async def sitemap(
    container=Depends(get_container), blog: BlogService = Depends(get_blog)
) -> Response:
    entries = await build_sitemap(container.settings.site_url, blog)
    return Response(content=render_sitemap(entries), media_type="application/xml")

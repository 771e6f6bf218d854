"""
HTTP layer.

Routers:
- /api/newsletter: Newsletter subscription
- /api/search: Post search
- /api/health: Health checks and runtime metrics
- /api/posts: Published posts
- /api/admin: Post management and subscriber stats
- /sitemap.xml
"""

from fastapi import FastAPI

from justhigher.api import admin, health, newsletter, posts, search, sitemap
from justhigher.api.errors import register_exception_handlers
from justhigher.api.middleware import register_middleware


def register_api(app: FastAPI) -> None:
    register_exception_handlers(app)
    register_middleware(app)
    for module in (newsletter, search, health, posts, admin, sitemap):
        app.include_router(module.router)


__all__ = ["register_api"]

"""
Public read API for published posts.
"""

from fastapi import APIRouter, Depends, Query

from justhigher.api.dependencies import get_blog, rate_limit
from justhigher.api.errors import ApiError
from justhigher.services.blog import BlogService

router = APIRouter(
    prefix="/api/posts",
    tags=["posts"],
    dependencies=[Depends(rate_limit("api"))],
)


@router.get("")
async def list_posts(
    limit: int = Query(default=10, ge=1, le=50),
    offset: int = Query(default=0, ge=0),
    blog: BlogService = Depends(get_blog),
):
    posts = await blog.get_published_posts(limit=limit, offset=offset)
    return {
        "success": True,
        "data": {
            "posts": [post.model_dump(mode="json") for post in posts],
            "limit": limit,
            "offset": offset,
        },
    }


@router.get("/{slug}")
async def get_post(slug: str, blog: BlogService = Depends(get_blog)):
    post = await blog.get_post_by_slug(slug)
    if post is None:
        raise ApiError(404, "POST_NOT_FOUND", "Post not found")
    return {"success": True, "data": post.model_dump(mode="json")}

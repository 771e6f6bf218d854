"""
Admin API for managing posts and inspecting subscribers.

All routes require ``Authorization: Bearer <ADMIN_API_TOKEN>`` and count
against the ``admin`` rate limit policy.
"""

from fastapi import APIRouter, Depends, Query, Response
from loguru import logger

from justhigher.api.dependencies import get_blog, rate_limit, require_admin
from justhigher.api.errors import ApiError
from justhigher.services.blog import BlogService
from justhigher.validation import PostCreate, PostUpdate

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(rate_limit("admin")), Depends(require_admin)],
)


@router.get("/posts")
async def list_posts(
    limit: int | None = Query(default=None, ge=1, le=500),
    blog: BlogService = Depends(get_blog),
):
    """Every post, drafts included, newest first."""
    posts = await blog.get_all_posts(limit=limit)
    return {"success": True, "data": [post.model_dump(mode="json") for post in posts]}


@router.get("/posts/{post_id}")
async def get_post(post_id: str, blog: BlogService = Depends(get_blog)):
    post = await blog.get_post_by_id(post_id)
    if post is None:
        raise ApiError(404, "POST_NOT_FOUND", "Post not found")
    return {"success": True, "data": post.model_dump(mode="json")}


@router.post("/posts", status_code=201)
async def create_post(payload: PostCreate, blog: BlogService = Depends(get_blog)):
    post = await blog.create_post(payload)
    return {"success": True, "data": post.model_dump(mode="json")}


@router.patch("/posts/{post_id}")
async def update_post(
    post_id: str, payload: PostUpdate, blog: BlogService = Depends(get_blog)
):
    post = await blog.update_post(post_id, payload)
    return {"success": True, "data": post.model_dump(mode="json")}


@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(post_id: str, blog: BlogService = Depends(get_blog)) -> Response:
    await blog.delete_post(post_id)
    return Response(status_code=204)


@router.get("/subscribers")
async def subscribers(
    limit: int = Query(default=10, ge=1, le=100),
    blog: BlogService = Depends(get_blog),
):
    count = await blog.get_subscriber_count()
    recent = await blog.get_recent_subscribers(limit)
    return {
        "success": True,
        "data": {
            "count": count,
            "recent": [subscriber.model_dump(mode="json") for subscriber in recent],
        },
    }


@router.post("/cache/clear")
async def clear_cache(blog: BlogService = Depends(get_blog)):
    await blog.clear_cache()
    logger.info("Cache cleared through admin API")
    return {"success": True, "message": "Cache cleared"}

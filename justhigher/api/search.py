"""
Post search endpoint.
"""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from justhigher.api.dependencies import get_blog, get_container, rate_limit
from justhigher.api.errors import ApiError
from justhigher.api.middleware import preflight_response
from justhigher.services.blog import BlogService
from justhigher.validation import SearchParams, format_validation_errors

router = APIRouter(prefix="/api/search", tags=["search"])

ALLOWED_METHODS = "GET, OPTIONS"
SEARCH_CACHE_CONTROL = "public, max-age=300"


@router.get("", dependencies=[Depends(rate_limit("search"))])
async def search(
    request: Request,
    q: str | None = None,
    limit: str | None = None,
    blog: BlogService = Depends(get_blog),
) -> JSONResponse:
    """Case-insensitive substring search over published posts."""
    if not q:
        raise ApiError(400, "MISSING_QUERY", "Search query is required")

    try:
        params = SearchParams.model_validate({"q": q, "limit": limit or 10})
    except PydanticValidationError as e:
        raise ApiError(
            400,
            "VALIDATION_ERROR",
            "Invalid search parameters",
            details=format_validation_errors(e),
        )

    try:
        results = await blog.search_posts(params.q, params.limit)
    except Exception as e:
        get_container(request).errors.add(e, "search_api")
        logger.error(f"Search failed for '{params.q}': {e}")
        raise ApiError(500, "SEARCH_FAILED", "Search failed. Please try again later.")

    return JSONResponse(
        content={
            "success": True,
            "data": {
                "query": params.q,
                "results": [post.model_dump(mode="json") for post in results],
                "total": len(results),
                "limit": params.limit,
            },
        },
        headers={"Cache-Control": SEARCH_CACHE_CONTROL},
    )


@router.options("")
async def search_preflight(request: Request) -> Response:
    return preflight_response(get_container(request).settings, ALLOWED_METHODS)


@router.post("")
async def search_method_not_allowed():
    raise ApiError(
        405,
        "METHOD_NOT_ALLOWED",
        "Method not allowed",
        headers={"Allow": ALLOWED_METHODS},
    )

"""
Newsletter subscription endpoint.
"""

from fastapi import APIRouter, Depends, Request, Response
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from justhigher.api.dependencies import get_blog, get_container, rate_limit
from justhigher.api.errors import ApiError
from justhigher.api.middleware import preflight_response
from justhigher.services.blog import BlogService
from justhigher.services.errors import AlreadySubscribedError
from justhigher.validation import (
    SubscribeRequest,
    format_validation_errors,
    is_spam_email,
)

router = APIRouter(prefix="/api/newsletter", tags=["newsletter"])

ALLOWED_METHODS = "POST, OPTIONS"


@router.post("", dependencies=[Depends(rate_limit("newsletter"))])
async def subscribe(request: Request, blog: BlogService = Depends(get_blog)):
    """Subscribe an email address to the newsletter."""
    try:
        body = await request.json()
    except ValueError:
        raise ApiError(400, "INVALID_JSON", "Invalid JSON in request body")

    try:
        payload = SubscribeRequest.model_validate(body)
    except PydanticValidationError as e:
        raise ApiError(
            400,
            "VALIDATION_ERROR",
            "Validation failed",
            details=format_validation_errors(e),
        )

    if is_spam_email(payload.email):
        logger.info(f"Blocked newsletter signup for {payload.email}")
        raise ApiError(400, "EMAIL_BLOCKED", "Email address not allowed")

    try:
        await blog.subscribe(payload.email, payload.source)
    except AlreadySubscribedError:
        raise ApiError(409, "ALREADY_SUBSCRIBED", "Email address is already subscribed")
    except Exception as e:
        get_container(request).errors.add(e, "newsletter_subscription")
        logger.error(f"Newsletter subscription failed: {e}")
        raise ApiError(
            500,
            "SUBSCRIPTION_FAILED",
            "Failed to subscribe. Please try again later.",
        )

    return {"success": True, "message": "Successfully subscribed to newsletter"}


@router.options("")
async def subscribe_preflight(request: Request) -> Response:
    return preflight_response(get_container(request).settings, ALLOWED_METHODS)


@router.get("")
async def subscribe_method_not_allowed():
    raise ApiError(
        405,
        "METHOD_NOT_ALLOWED",
        "Method not allowed",
        headers={"Allow": ALLOWED_METHODS},
    )

"""
FastAPI dependencies: container access, client identity, rate limiting and
admin authentication.
"""

import hmac
import uuid
from typing import TYPE_CHECKING, Awaitable, Callable

from fastapi import Request
from loguru import logger

from justhigher.api.errors import ApiError
from justhigher.services.blog import BlogService
from justhigher.services.errors import RateLimitError
from justhigher.services.rate_limiter import RateLimitResult, client_identifier

if TYPE_CHECKING:
    from justhigher.app import AppContainer

SHARED_ANONYMOUS_ID = "anonymous"


def get_container(request: Request) -> "AppContainer":
    return request.app.state.container


def get_blog(request: Request) -> BlogService:
    return request.app.state.container.blog


def resolve_client_id(request: Request, policy: str = "isolate") -> str:
    """
    Identity used for rate limiting.

    Forwarding headers win. Without them, ``isolate`` falls back to the socket
    peer and then to a per-request token; ``shared`` pools every anonymous
    caller into one bucket.
    """
    if policy == "shared":
        fallback = SHARED_ANONYMOUS_ID
    elif request.client and request.client.host:
        fallback = f"peer:{request.client.host}"
    else:
        fallback = f"anonymous:{uuid.uuid4().hex}"
    return client_identifier(request.headers, fallback)


def rate_limit(category: str) -> Callable[[Request], Awaitable[RateLimitResult]]:
    """
    Build a dependency that admits the request under the ``category`` policy.

    The result is stored on ``request.state.rate_limit`` so the response
    middleware can attach the ``X-RateLimit-*`` headers to whatever response
    the route ends up producing.
    """

    async def check(request: Request) -> RateLimitResult:
        container = get_container(request)
        client_id = resolve_client_id(
            request, container.settings.anonymous_client_policy
        )
        result = container.rate_limiters.get(category).check(client_id)
        request.state.rate_limit = result

        if not result.allowed:
            logger.warning(
                f"Rate limit exceeded: category={category} client={client_id} "
                f"retry_after={result.retry_after}s"
            )
            raise RateLimitError(
                category,
                result.limit,
                result.reset_at,
                retry_after=result.retry_after,
                message=result.message,
            )
        return result

    return check


async def require_admin(request: Request) -> None:
    """Bearer token check against ``ADMIN_API_TOKEN``. Rejects everything when unset."""
    expected = get_container(request).settings.admin_api_token
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")

    if (
        not expected
        or scheme.lower() != "bearer"
        or not hmac.compare_digest(token.strip().encode(), expected.encode())
    ):
        raise ApiError(
            401, "UNAUTHORIZED", "Unauthorized", headers={"WWW-Authenticate": "Bearer"}
        )

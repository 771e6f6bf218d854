"""
Response middleware: security headers, CORS origin, rate-limit headers and
the last-resort INTERNAL_ERROR response.
"""

from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response

from justhigher.api.errors import internal_error_response
from justhigher.settings import Settings

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

CORS_MAX_AGE = "86400"


def cors_headers(
    settings: Settings,
    methods: str,
    allow_headers: str = "Content-Type, Authorization",
) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": settings.cors_origin,
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": allow_headers,
        "Access-Control-Max-Age": CORS_MAX_AGE,
    }


def preflight_response(settings: Settings, methods: str) -> Response:
    """Empty 200 carrying only CORS headers."""
    return Response(status_code=200, headers=cors_headers(settings, methods))


def register_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def response_headers(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        settings: Settings = request.app.state.container.settings
        try:
            response = await call_next(request)
        except Exception as e:
            response = internal_error_response(request, e, request.url.path)

        # Preflight responses carry CORS headers only.
        if request.method == "OPTIONS":
            return response

        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        response.headers.setdefault("Access-Control-Allow-Origin", settings.cors_origin)

        rate_limit = getattr(request.state, "rate_limit", None)
        if rate_limit is not None:
            for name, value in rate_limit.headers().items():
                response.headers[name] = value
        return response

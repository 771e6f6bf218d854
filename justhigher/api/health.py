"""
Health endpoint.
"""

import os
import platform
import sys
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger

from justhigher.api.dependencies import get_container
from justhigher.services.monitoring import HealthChecker, HealthStatus

router = APIRouter(prefix="/api/health", tags=["health"])

HEALTH_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}

TOP_ERRORS = 10


@router.get("")
async def health(detailed: str | None = None, container=Depends(get_container)) -> JSONResponse:
    """
    Run every registered health check.

    200 only when the overall status is healthy, 503 otherwise. With
    ``?detailed=true`` the body also carries performance metrics, the most
    frequent errors, cache statistics and process information.
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        results = await container.health.run_all()
        status = HealthChecker.overall(results)

        body: dict[str, Any] = {
            "status": status.value,
            "timestamp": timestamp,
            "version": container.settings.app_version,
            "uptime": int(time.monotonic() - container.started_at),
            "checks": [result.to_dict() for result in results],
        }
        if detailed == "true":
            body.update(
                {
                    "performance": container.performance.get_all(),
                    "errors": container.errors.summary(TOP_ERRORS),
                    "cache": container.cache.get_stats().to_dict(),
                    "rate_limits": container.rate_limiters.get_all_status(),
                    "system": _system_info(),
                }
            )
    except Exception as e:
        logger.error(f"Health check error: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": HealthStatus.UNHEALTHY.value,
                "error": "Health check failed",
                "timestamp": timestamp,
            },
            headers=HEALTH_HEADERS,
        )

    return JSONResponse(
        status_code=200 if status == HealthStatus.HEALTHY else 503,
        content=body,
        headers=HEALTH_HEADERS,
    )


def _system_info() -> dict[str, Any]:
    return {
        "python_version": platform.python_version(),
        "implementation": platform.python_implementation(),
        "platform": sys.platform,
        "arch": platform.machine(),
        "pid": os.getpid(),
    }

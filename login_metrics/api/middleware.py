"""Custom middleware for FastAPI."""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from login_metrics.core import metrics
from login_metrics.core.logging import get_logger

logger = get_logger(__name__)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect metrics for all requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics."""
        start_time = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        method = request.method
        # Label by route template, e.g. /analytics/metrics/daily/{day}
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        metrics.api_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        metrics.api_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

        logger.info(
            "Request processed",
            method=method,
            path=request.url.path,
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )

        return response

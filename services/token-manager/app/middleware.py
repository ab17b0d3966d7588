"""
HTTP middleware for the token manager.

``RequestIDMiddleware`` binds a request id to the logging context;
``PrometheusMiddleware`` records request count and latency.
"""

import time
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import request_id_context, set_request_id


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Propagate X-Request-ID into log records and back to the client."""

    async def dispatch(self, request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        try:
            response = await call_next(request)
        finally:
            request_id_context.set(None)
        response.headers["X-Request-ID"] = request_id
        return response


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track Prometheus metrics for all HTTP requests.

    Tracks:
    - Request count by method, endpoint, and status code
    - Request duration by method and endpoint
    """

    def __init__(self, app, track_func: Callable):
        """
        Initialize the middleware.

        Args:
            app: FastAPI application
            track_func: Called with (method, endpoint, status_code, duration)
        """
        super().__init__(app)
        self.track_func = track_func

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        # Route template, not the raw path
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or "unmatched"

        self.track_func(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
            duration=duration,
        )
        return response

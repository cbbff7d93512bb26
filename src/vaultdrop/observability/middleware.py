"""Request middleware: correlation IDs, HTTP metrics and access logging.

Register in this order so the request ID is bound before anything logs::

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

Share tokens travel in the URL path. Metrics and access logs therefore use
the matched route template (``/api/v1/links/{token}/download``), falling
back to ``normalize_path`` for requests no route matched.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")
_LINK_PATH = re.compile(r"^/api/v1/links/[^/]+(?P<rest>/[^/]+)?$")


def normalize_path(path: str) -> str:
    """Replace the token segment of a share-link path with ``{token}``."""
    match = _LINK_PATH.match(path)
    if match is None:
        return path
    return "/api/v1/links/{token}" + (match.group("rest") or "")


def route_label(request: Request) -> str:
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or normalize_path(request.url.path)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Accept a well-formed X-Request-ID or mint one; echo it back."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        rid = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())

        reset_token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(reset_token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        status = "500"
        HTTP_REQUESTS_IN_FLIGHT.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            # The route is only known once routing has run.
            route = route_label(request)
            HTTP_REQUESTS_IN_FLIGHT.dec()
            HTTP_REQUEST_DURATION_SECONDS.labels(
                method=request.method, route=route,
            ).observe(time.perf_counter() - start)
            HTTP_REQUESTS_TOTAL.labels(
                method=request.method, route=route, status=status,
            ).inc()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One ``request_completed`` entry per request; 5xx logged as errors."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        log = logger.error if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            method=request.method,
            route=route_label(request),
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response

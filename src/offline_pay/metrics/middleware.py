"""Prometheus HTTP request metrics middleware for the local API.

Tracks:
- ``offline_pay_http_requests_total`` (counter) by method, route, status
- ``offline_pay_http_request_duration_seconds`` (histogram) by method, route

Requests are labelled with the matched route template
(``/v1/transactions/{tx_hash}``), not the raw path, to keep label
cardinality bounded. The scrape endpoint itself is not counted.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from collections.abc import Callable

    from prometheus_client import CollectorRegistry
    from starlette.requests import Request
    from starlette.responses import Response

_SKIP_PATHS = frozenset({"/metrics"})


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template if isinstance(template, str) else "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that records request count and duration."""

    def __init__(self, app: object, *, registry: CollectorRegistry) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._requests = Counter(
            "offline_pay_http_requests",
            "Local API requests",
            ("method", "route", "status_code"),
            registry=registry,
        )
        self._duration = Histogram(
            "offline_pay_http_request_duration_seconds",
            "Local API request duration in seconds",
            ("method", "route"),
            registry=registry,
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:  # type: ignore[type-arg]
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        start = time.monotonic()
        response: Response = await call_next(request)
        elapsed = time.monotonic() - start

        route = _route_label(request)
        self._requests.labels(request.method, route, str(response.status_code)).inc()
        self._duration.labels(request.method, route).observe(elapsed)
        return response

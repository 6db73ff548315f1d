r"""backend\app\core\observability.py

Access logging and Prometheus metrics for the API and the predictor."""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ACCESS_LOGGER = logging.getLogger("smartmandi.access")

MODEL_USED_HEADER = "x-model-used"

_REQUEST_COUNTER = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "path", "status"]
)
_LATENCY_HISTOGRAM = Histogram(
    "http_request_latency_seconds", "Request latency", ["method", "path"]
)

PREDICTOR_INVOCATIONS = Counter(
    "predictor_invocations_total",
    "External predictor invocations by outcome",
    ["operation", "outcome"],
)
PREDICTOR_DURATION = Histogram(
    "predictor_duration_seconds",
    "Wall-clock duration of external predictor invocations",
    ["operation"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 45.0, 60.0, float("inf")),
)
FALLBACK_RECOMMENDATIONS = Counter(
    "fallback_recommendations_total",
    "Price recommendations produced by the rule-based fallback",
)


def _route_label(request: Request) -> str:
    # Use the route template so ids do not explode label cardinality.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one JSON access-log line and Prometheus metrics per request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        method = request.method
        client_ip = request.client.host if request.client else "unknown"
        request_id = (
            request.headers.get("x-request-id")
            or request.headers.get("request-id")
            or str(uuid.uuid4())
        )

        start_perf = time.perf_counter()
        start_wall = time.time()

        def _finalize(response: Response) -> Response:
            latency = time.perf_counter() - start_perf
            status_code = getattr(response, "status_code", 500)
            path_label = _route_label(request)

            _REQUEST_COUNTER.labels(method, path_label, str(status_code)).inc()
            _LATENCY_HISTOGRAM.labels(method, path_label).observe(latency)

            log_payload = {
                "timestamp": datetime.fromtimestamp(start_wall, tz=timezone.utc).isoformat(),
                "path": path,
                "method": method,
                "status": status_code,
                "latency_ms": int(latency * 1000),
                "request_id": request_id,
                "client_ip": client_ip,
                "model_used": response.headers.get(MODEL_USED_HEADER),
            }
            ACCESS_LOGGER.info(json.dumps(log_payload))
            response.headers.setdefault("x-request-id", request_id)
            return response

        try:
            response = await call_next(request)
        except Exception:
            # Still record the failed request before propagating.
            _finalize(Response("Internal Server Error", status_code=500))
            raise

        return _finalize(response)


def metrics_endpoint() -> Response:
    """Return Prometheus metrics payload."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

from __future__ import annotations

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from src.app.settings import settings

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
SEARCH_COUNT = Counter(
    "hybrid_search_total",
    "Hybrid searches by outcome",
    ["outcome"],
)
SEARCH_LATENCY = Histogram(
    "hybrid_search_duration_seconds",
    "Hybrid search duration in seconds",
)
BRANCH_RESULTS = Histogram(
    "hybrid_search_branch_results",
    "Candidates returned per retrieval branch",
    ["branch"],
    buckets=(0, 1, 2, 5, 10, 20, 50, 100),
)
QUERY_COUNT = Counter(
    "query_pipeline_total",
    "Processed queries by outcome",
    ["outcome"],
)


async def metrics_middleware(request: Request, call_next):
    if not settings.metrics_enabled:
        return await call_next(request)
    path = request.url.path
    if path == "/metrics":
        return await call_next(request)
    start = time.monotonic()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        duration = time.monotonic() - start
        REQUEST_COUNT.labels(request.method, path, str(status)).inc()
        REQUEST_LATENCY.labels(request.method, path).observe(duration)


def metrics_response() -> Response:
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

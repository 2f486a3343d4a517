"""Prometheus metrics for the permit ledger.

Labels stay low-cardinality: operation names, outcomes and failure kinds,
never accounts or permit names.
"""
from __future__ import annotations

import os
import time

from fastapi import Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


def _env_bool(name: str, default: bool = True) -> bool:
    v = (os.getenv(name, "") or "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "on")


HTTP_REQUESTS_TOTAL = Counter(
    "permit_ledger_http_requests_total",
    "Total HTTP requests received",
    ["method", "route", "status"],
)
HTTP_REQUEST_LATENCY_SECONDS = Histogram(
    "permit_ledger_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "route"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)
CALCULATIONS_TOTAL = Counter(
    "permit_ledger_calculations_total",
    "Write invocations by operation and outcome",
    ["operation", "outcome"],
)
HISTORY_QUERIES_TOTAL = Counter(
    "permit_ledger_history_queries_total",
    "Permit-gated history reads by outcome",
    ["outcome"],
)


def record_calculation(operation: str, outcome: str) -> None:
    CALCULATIONS_TOTAL.labels(operation=str(operation), outcome=str(outcome)).inc()


def record_history_query(outcome: str) -> None:
    HISTORY_QUERIES_TOTAL.labels(outcome=str(outcome)).inc()


def instrument_fastapi(app) -> None:
    """Attach /metrics and request middleware to a FastAPI app."""
    if not _env_bool("PERMIT_LEDGER_METRICS_ENABLED", True):
        return

    @app.middleware("http")
    async def _metrics_middleware(request: Request, call_next):
        start = time.time()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            route_path = getattr(route, "path", None) or request.url.path
            HTTP_REQUESTS_TOTAL.labels(method=request.method, route=route_path, status=str(status)).inc()
            HTTP_REQUEST_LATENCY_SECONDS.labels(method=request.method, route=route_path).observe(time.time() - start)

    @app.get("/metrics")
    async def metrics_endpoint():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

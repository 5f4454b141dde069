"""
Prometheus Metrics Middleware

Provides request/response and workflow metrics for monitoring:
- HTTP request latency (p50, p95, p99)
- Request count by endpoint and status
- Active request gauge
- Workflow transitions and rejections per entity
- Notification dispatch outcomes

Usage:
    from proexchange.middleware.metrics import setup_metrics

    # In main.py
    app = FastAPI()
    setup_metrics(app)

Metrics Endpoint:
    GET /metrics - Prometheus-format metrics
"""

import time
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CONTENT_TYPE_LATEST,
    generate_latest,
    REGISTRY,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

logger = logging.getLogger(__name__)

# ==================== Prometheus Metrics ====================

# Request latency histogram with custom buckets for sub-second monitoring
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
    ["method", "endpoint"]
)

# Workflow metrics
WORKFLOW_TRANSITIONS = Counter(
    "workflow_transitions_total",
    "Accepted status transitions",
    ["entity", "from_status", "to_status"]
)

WORKFLOW_REJECTIONS = Counter(
    "workflow_rejections_total",
    "Workflow operations rejected by validation, permission or invariant checks",
    ["entity", "reason"]
)

BENCH_REORDER_SIZE = Histogram(
    "bench_reorder_size",
    "Number of entries in a bench reorder batch",
    buckets=[1, 2, 5, 10, 25, 50, 100]
)

# Notification metrics
NOTIFICATIONS_DISPATCHED = Counter(
    "notifications_dispatched_total",
    "Notifications handed to the outbound transport",
    ["kind"]
)

NOTIFICATIONS_FAILED = Counter(
    "notifications_failed_total",
    "Notifications the outbound transport refused",
    ["kind"]
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for Prometheus metrics collection.

    Records:
    - Request latency
    - Request count by status code
    - Active request count
    """

    def __init__(self, app: FastAPI, app_name: str = "proexchange"):
        super().__init__(app)
        self.app_name = app_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        """Process request and record metrics."""
        endpoint = self._get_endpoint(request)
        method = request.method

        if endpoint == "/metrics":
            return await call_next(request)

        active_endpoint = endpoint
        ACTIVE_REQUESTS.labels(method=method, endpoint=active_endpoint).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status = str(response.status_code)
            # The router records the matched route in the shared scope
            endpoint = self._route_template(request) or endpoint
        except Exception as e:
            status = "500"
            logger.error(f"Request error: {e}")
            raise
        finally:
            duration = time.perf_counter() - start_time

            REQUEST_LATENCY.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).observe(duration)

            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()

            ACTIVE_REQUESTS.labels(
                method=method,
                endpoint=active_endpoint
            ).dec()

        return response

    def _get_endpoint(self, request: Request) -> str:
        """
        Get normalized endpoint path from request.

        Uses route pattern (e.g., /connections/{connection_id}) instead of
        actual path to avoid high cardinality.
        """
        for route in request.app.routes:
            # Included routers are not plain routes and carry no path
            path = getattr(route, "path", None)
            if path is None:
                continue
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return path

        return request.url.path

    @staticmethod
    def _route_template(request: Request) -> Optional[str]:
        route = request.scope.get("route")
        return getattr(route, "path", None)


def metrics_endpoint(request: Request) -> Response:
    """Endpoint handler for Prometheus metrics scraping."""
    return PlainTextResponse(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )


def setup_metrics(app: FastAPI) -> None:
    """
    Configure Prometheus metrics for FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(PrometheusMiddleware, app_name="proexchange")
    app.add_route("/metrics", metrics_endpoint, methods=["GET"])

    logger.info("Prometheus metrics configured")


# ==================== Helper Functions ====================

def record_transition(entity: str, from_status, to_status) -> None:
    """Record an accepted status transition."""
    WORKFLOW_TRANSITIONS.labels(
        entity=entity,
        from_status=getattr(from_status, "value", from_status),
        to_status=getattr(to_status, "value", to_status),
    ).inc()


def record_rejection(entity: str, reason: str) -> None:
    """Record a rejected workflow operation (reason = error code)."""
    WORKFLOW_REJECTIONS.labels(entity=entity, reason=reason).inc()


def record_reorder(size: int) -> None:
    BENCH_REORDER_SIZE.observe(size)


def record_notification(kind: str, delivered: bool) -> None:
    """Record the outcome of handing a notification to its transport."""
    if delivered:
        NOTIFICATIONS_DISPATCHED.labels(kind=kind).inc()
    else:
        NOTIFICATIONS_FAILED.labels(kind=kind).inc()

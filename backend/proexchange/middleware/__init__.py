"""
Middleware Package

Contains FastAPI middleware for:
- Prometheus metrics collection
- Workflow transition / rejection counters
"""

from proexchange.middleware.metrics import (
    PrometheusMiddleware,
    setup_metrics,
    REQUEST_LATENCY,
    REQUEST_COUNT,
    ACTIVE_REQUESTS,
    WORKFLOW_TRANSITIONS,
    WORKFLOW_REJECTIONS,
    NOTIFICATIONS_DISPATCHED,
    NOTIFICATIONS_FAILED,
)

__all__ = [
    "PrometheusMiddleware",
    "setup_metrics",
    "REQUEST_LATENCY",
    "REQUEST_COUNT",
    "ACTIVE_REQUESTS",
    "WORKFLOW_TRANSITIONS",
    "WORKFLOW_REJECTIONS",
    "NOTIFICATIONS_DISPATCHED",
    "NOTIFICATIONS_FAILED",
]

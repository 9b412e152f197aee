"""Prometheus metrics for zkleader.

Provides metrics collection and exposure:
- HTTP request metrics for the control surface
- Election metrics (status, connection, peers, leadership changes)
- Session metrics (expiries, reconnect attempts)

Usage:
    from zkleader.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.leadership_acquired_total.inc()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from zkleader.config import settings

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

STATUS_VALUES = {"WATCHING": 0, "WAITING": 1, "LEADING": 2}


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # HTTP metrics
    http_requests_total: Any = None
    http_request_duration_seconds: Any = None

    # Election metrics
    election_status: Any = None
    session_connected: Any = None
    peers_total: Any = None
    leadership_acquired_total: Any = None
    races_lost_total: Any = None

    # Session metrics
    session_expired_total: Any = None
    reconnect_attempts_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: CollectorRegistry | None = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        registry = CollectorRegistry()
        self._registry = registry

        self.http_requests_total = Counter(
            "zkleader_http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
            registry=registry,
        )
        self.http_request_duration_seconds = Histogram(
            "zkleader_http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "path"],
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0),
            registry=registry,
        )

        self.election_status = Gauge(
            "zkleader_election_status",
            "Election status (0=WATCHING, 1=WAITING, 2=LEADING)",
            registry=registry,
        )
        self.session_connected = Gauge(
            "zkleader_session_connected",
            "1 while the coordination session is connected",
            registry=registry,
        )
        self.peers_total = Gauge(
            "zkleader_peers_total",
            "Live peers registered under the peers path",
            registry=registry,
        )
        self.leadership_acquired_total = Counter(
            "zkleader_leadership_acquired_total",
            "Times this process created the leader record",
            registry=registry,
        )
        self.races_lost_total = Counter(
            "zkleader_races_lost_total",
            "Leader record creations that collided with an existing record",
            registry=registry,
        )

        self.session_expired_total = Counter(
            "zkleader_session_expired_total",
            "Coordination sessions lost to expiry",
            registry=registry,
        )
        self.reconnect_attempts_total = Counter(
            "zkleader_reconnect_attempts_total",
            "Attempts to open a replacement session",
            registry=registry,
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request count and latency for the control surface."""

    def __init__(self, app: "ASGIApp") -> None:
        super().__init__(app)
        self.metrics = get_metrics()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        if request.url.path in ("/health/live", "/health/ready", "/metrics"):
            return await call_next(request)

        method = request.method
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            path = _route_label(request)
            if self.metrics.http_requests_total:
                self.metrics.http_requests_total.labels(
                    method=method,
                    path=path,
                    status=status_code,
                ).inc()
            if self.metrics.http_request_duration_seconds:
                self.metrics.http_request_duration_seconds.labels(
                    method=method,
                    path=path,
                ).observe(duration)


def _route_label(request: Request) -> str:
    """Label requests by route template to keep path cardinality bounded."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def set_election_status(status: str, connected: bool, peer_count: int) -> None:
    """Publish the current election snapshot as gauges."""
    metrics = get_metrics()
    if metrics.election_status:
        metrics.election_status.set(STATUS_VALUES.get(status, 0))
    if metrics.session_connected:
        metrics.session_connected.set(1 if connected else 0)
    if metrics.peers_total:
        metrics.peers_total.set(peer_count)


def record_leadership_acquired() -> None:
    metrics = get_metrics()
    if metrics.leadership_acquired_total:
        metrics.leadership_acquired_total.inc()


def record_race_lost() -> None:
    metrics = get_metrics()
    if metrics.races_lost_total:
        metrics.races_lost_total.inc()


def record_session_expired() -> None:
    metrics = get_metrics()
    if metrics.session_expired_total:
        metrics.session_expired_total.inc()


def record_reconnect_attempt() -> None:
    metrics = get_metrics()
    if metrics.reconnect_attempts_total:
        metrics.reconnect_attempts_total.inc()

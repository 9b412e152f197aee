"""Observability module for zkleader.

Provides structured logging and metrics:
- JSON structured logging with peer identity context
- Prometheus metrics for election state and the control surface
"""

from zkleader.observability.logging import (
    configure_logging,
    peer_id_var,
)
from zkleader.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "peer_id_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
    "MetricsMiddleware",
]

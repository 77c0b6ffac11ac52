"""Observability module for DocFlow.

Provides structured logging, request correlation and Prometheus metrics.
"""

from .logging_config import configure_logging
from .metrics import (
    workflow_transitions_total,
    workflow_rejected_operations_total,
    side_effect_failures_total,
)
from .middleware import RequestIDMiddleware, get_request_id, request_id_var

__all__ = [
    "configure_logging",
    "workflow_transitions_total",
    "workflow_rejected_operations_total",
    "side_effect_failures_total",
    "RequestIDMiddleware",
    "get_request_id",
    "request_id_var",
]

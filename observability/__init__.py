"""
Observability Module
====================

Structured logging, Prometheus metrics and OpenTelemetry tracing.
"""

from observability.logging_config import block_context, bind_context, clear_context, get_logger, setup_logging
from observability.metrics import setup_metrics, track_block, track_verdict, write_metrics
from observability.tracing import get_tracer, setup_tracing, shutdown_tracing

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "block_context",
    "setup_metrics",
    "track_block",
    "track_verdict",
    "write_metrics",
    "setup_tracing",
    "shutdown_tracing",
    "get_tracer",
]

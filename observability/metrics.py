"""
Prometheus Metrics
==================

Run metrics for the tutorial verifier, exported in the Prometheus textfile
format so a node exporter (or CI artifact) can pick them up after a run.
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    write_to_textfile,
)

# Create a custom registry for this application
REGISTRY = CollectorRegistry()

APP_INFO = Info(
    "tutorial_verifier",
    "Tutorial verifier build information",
    registry=REGISTRY,
)

BLOCKS_TOTAL = Counter(
    "tutorial_verifier_blocks_total",
    "Blocks processed, by execution status",
    ["status"],  # success, failed, skipped
    registry=REGISTRY,
)

VERDICTS_TOTAL = Counter(
    "tutorial_verifier_verdicts_total",
    "Comparison verdicts, by verdict",
    ["verdict"],  # match, mismatch, unverified
    registry=REGISTRY,
)

BLOCK_DURATION = Histogram(
    "tutorial_verifier_block_duration_seconds",
    "Block execution duration in seconds",
    ["kind"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
    registry=REGISTRY,
)

RUN_DURATION = Histogram(
    "tutorial_verifier_run_duration_seconds",
    "Whole run duration in seconds",
    buckets=[0.1, 0.5, 1.0, 5.0, 30.0, 120.0, 600.0],
    registry=REGISTRY,
)

TEARDOWN_PENDING = Gauge(
    "tutorial_verifier_teardown_pending_objects",
    "Objects created by the run and not yet dropped",
    registry=REGISTRY,
)

TEARDOWN_ERRORS = Counter(
    "tutorial_verifier_teardown_errors_total",
    "Objects that could not be dropped during teardown",
    registry=REGISTRY,
)


def setup_metrics(version: str) -> None:
    """Record build information."""
    APP_INFO.info({"version": version})


def track_block(status: str, kind: str, duration_seconds: float) -> None:
    """
    Track metrics for one executed block.

    Args:
        status: Execution status value
        kind: Block kind value
        duration_seconds: Time spent executing
    """
    BLOCKS_TOTAL.labels(status=status).inc()
    if status != "skipped":
        BLOCK_DURATION.labels(kind=kind).observe(duration_seconds)


def track_verdict(verdict: str) -> None:
    VERDICTS_TOTAL.labels(verdict=verdict).inc()


def write_metrics(path: str) -> None:
    """Write all metrics to ``path`` in the Prometheus text format."""
    write_to_textfile(path, REGISTRY)

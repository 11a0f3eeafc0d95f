"""
OpenTelemetry Tracing
=====================

Spans around a verification run and each executed block.
"""

import os
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from observability.logging_config import get_logger

logger = get_logger(__name__)


def setup_tracing(
    service_name: str = "tutorial-verifier",
    otlp_endpoint: Optional[str] = None,
    version: str = "0.1.0",
) -> bool:
    """
    Install an SDK tracer provider exporting over OTLP.

    Without an endpoint (argument or OTEL_EXPORTER_OTLP_ENDPOINT) nothing is
    installed and the API's no-op tracer stays in effect.

    Args:
        service_name: Name of the service for traces
        otlp_endpoint: OTLP collector endpoint
        version: Service version attribute

    Returns:
        True if a provider was installed
    """
    endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint or endpoint == "disabled":
        return False

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    resource = Resource.create({
        SERVICE_NAME: service_name,
        "service.version": version,
    })
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    trace.set_tracer_provider(provider)
    logger.info("tracing_enabled", endpoint=endpoint)
    return True


def shutdown_tracing() -> None:
    """Flush pending spans if an SDK provider is installed."""
    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.shutdown()


def get_tracer(name: str = __name__) -> trace.Tracer:
    """
    Get a tracer instance for creating spans.

    Args:
        name: Name for the tracer (usually module name)
    """
    return trace.get_tracer(name)

"""
OpenTelemetry configuration and initialization for the Axiom client

The client always emits spans and metrics through the OpenTelemetry API; they
are no-ops until a provider is installed. Applications that do not configure
OpenTelemetry themselves can call `initialize_telemetry()` to export to an
OTLP collector.
"""

import os
from typing import Optional

from opentelemetry import metrics, trace

from ..logging import get_logger

logger = get_logger('TELEMETRY')

INSTRUMENTATION_NAME = "axiom_client"

# Global telemetry state
_telemetry_initialized = False


def is_telemetry_enabled() -> bool:
    """Check if OTLP export is enabled via environment variables."""
    return os.getenv('OTEL_TELEMETRY_ENABLED', 'false').lower() in ('true', '1', 'yes', 'on')


def get_service_name() -> str:
    """Get the service name for telemetry."""
    return os.getenv('OTEL_SERVICE_NAME', 'axiom-client')


def get_otel_endpoint() -> str:
    """Get the OTLP endpoint for telemetry export."""
    return os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT', 'http://localhost:4317')


def get_deployment_environment() -> str:
    """Get the deployment environment."""
    return os.getenv('DEPLOYMENT_ENVIRONMENT', 'development')


def initialize_telemetry(force: bool = False) -> bool:
    """
    Install OTLP tracing and metrics providers and instrument httpx.

    Args:
        force: Initialize even when OTEL_TELEMETRY_ENABLED is not set

    Returns:
        True if providers were installed, False otherwise
    """
    global _telemetry_initialized

    if _telemetry_initialized:
        logger.debug("telemetry already initialized")
        return True

    if not force and not is_telemetry_enabled():
        logger.info("telemetry disabled via configuration")
        return False

    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    from .. import __version__

    resource = Resource.create({
        "service.name": get_service_name(),
        "service.version": __version__,
        "deployment.environment": get_deployment_environment(),
        "telemetry.sdk.language": "python"
    })

    otlp_endpoint = get_otel_endpoint()
    logger.info(f"initializing telemetry | endpoint:{otlp_endpoint} | service:{get_service_name()}")

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
    )
    trace.set_tracer_provider(trace_provider)

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=otlp_endpoint, insecure=True),
        export_interval_millis=10000
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[metric_reader]))

    HTTPXClientInstrumentor().instrument()

    _telemetry_initialized = True
    logger.info("telemetry initialization complete")
    return True


def get_tracer(tracer_provider: Optional[trace.TracerProvider] = None) -> trace.Tracer:
    """Get the client's tracer from the given or the global provider."""
    if tracer_provider is not None:
        return tracer_provider.get_tracer(INSTRUMENTATION_NAME)
    return trace.get_tracer(INSTRUMENTATION_NAME)


def get_meter() -> metrics.Meter:
    """Get the client's meter from the global provider."""
    return metrics.get_meter(INSTRUMENTATION_NAME)


def shutdown_telemetry():
    """Shutdown telemetry providers installed by initialize_telemetry and flush pending data."""
    global _telemetry_initialized

    if not _telemetry_initialized:
        return

    try:
        trace_provider = trace.get_tracer_provider()
        if hasattr(trace_provider, 'shutdown'):
            trace_provider.shutdown()

        meter_provider = metrics.get_meter_provider()
        if hasattr(meter_provider, 'shutdown'):
            meter_provider.shutdown()

        logger.info("telemetry shutdown complete")
    finally:
        _telemetry_initialized = False


def get_telemetry_status() -> dict:
    """
    Get the current telemetry configuration status.

    Returns:
        Dictionary with telemetry status information
    """
    return {
        "enabled": is_telemetry_enabled(),
        "initialized": _telemetry_initialized,
        "service_name": get_service_name(),
        "endpoint": get_otel_endpoint(),
        "environment": get_deployment_environment()
    }

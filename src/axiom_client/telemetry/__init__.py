"""
OpenTelemetry instrumentation package for the Axiom client

Provides tracer/meter access, the API-call decorator, span helpers and
metric recorders used by the transport and the client facade.
"""

from .config import (
    initialize_telemetry,
    get_tracer,
    get_meter,
    shutdown_telemetry,
    is_telemetry_enabled,
    get_telemetry_status
)

from .decorators import trace_api_call

from .utils import (
    add_span_attributes,
    add_axiom_context,
    set_span_status,
    record_exception,
    correlate_with_logging
)

from .metrics import (
    record_operation,
    record_attempt,
    record_ingest_status
)

__all__ = [
    # Core configuration
    'initialize_telemetry',
    'get_tracer',
    'get_meter',
    'shutdown_telemetry',
    'is_telemetry_enabled',
    'get_telemetry_status',

    # Decorators
    'trace_api_call',

    # Utilities
    'add_span_attributes',
    'add_axiom_context',
    'set_span_status',
    'record_exception',
    'correlate_with_logging',

    # Metrics
    'record_operation',
    'record_attempt',
    'record_ingest_status'
]

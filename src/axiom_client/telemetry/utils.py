"""
OpenTelemetry utility functions for manual instrumentation
"""

from typing import Any, Dict, Optional

from opentelemetry import trace

from ..logging import get_logger

logger = get_logger('TELEMETRY')

MAX_ATTRIBUTE_LENGTH = 1000


def add_span_attributes(span, attributes: Dict[str, Any]):
    """
    Add multiple attributes to a span with type validation.

    Args:
        span: OpenTelemetry span
        attributes: Dictionary of attribute key-value pairs
    """
    if not span or not attributes:
        return

    for key, value in attributes.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            span.set_attribute(key, value)
            continue
        value_str = str(value)
        if len(value_str) <= MAX_ATTRIBUTE_LENGTH:
            span.set_attribute(key, value_str)
        else:
            span.set_attribute(f"{key}_size", len(value_str))
            span.set_attribute(f"{key}_truncated", value_str[:200] + "...")


def set_span_status(span, success: bool, message: Optional[str] = None):
    """
    Set span status based on operation success.

    Args:
        span: OpenTelemetry span
        success: Whether the operation was successful
        message: Optional status message
    """
    if not span:
        return

    if success:
        span.set_status(trace.Status(trace.StatusCode.OK))
    else:
        span.set_status(trace.Status(trace.StatusCode.ERROR, message or "Operation failed"))


def record_exception(span, exception: BaseException, escaped: bool = False):
    """
    Record an exception on a span with additional context.

    Args:
        span: OpenTelemetry span
        exception: Exception to record
        escaped: Whether the exception escaped the span
    """
    if not span:
        return

    span.record_exception(exception, escaped=escaped)
    span.set_attribute("exception.type", type(exception).__name__)
    span.set_attribute("exception.message", str(exception)[:MAX_ATTRIBUTE_LENGTH])


def add_axiom_context(span, dataset: Optional[str] = None,
                      endpoint: Optional[str] = None,
                      content_type: Optional[str] = None,
                      content_encoding: Optional[str] = None):
    """
    Add Axiom-specific context to a span.

    Args:
        span: OpenTelemetry span
        dataset: Target dataset name
        endpoint: API path being called
        content_type: Payload content type for ingest calls
        content_encoding: Payload content encoding for ingest calls
    """
    add_span_attributes(span, {
        "axiom.dataset": dataset,
        "axiom.endpoint": endpoint,
        "axiom.ingest.content_type": content_type,
        "axiom.ingest.content_encoding": content_encoding or None,
    })


def correlate_with_logging(extra_fields: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Get correlation fields for logging from the current span.

    Args:
        extra_fields: Additional fields to include

    Returns:
        Dictionary of correlation fields for logging
    """
    fields = dict(extra_fields or {})

    span = trace.get_current_span()
    if span and span.is_recording():
        span_context = span.get_span_context()
        fields['trace_id'] = format(span_context.trace_id, '032x')
        fields['span_id'] = format(span_context.span_id, '016x')

    return fields

"""
OpenTelemetry decorators for instrumenting Axiom client operations
"""

import functools
import time
from typing import Callable, Optional

from opentelemetry import trace

from ..logging import get_logger
from .config import get_tracer
from .metrics import record_operation
from .utils import add_span_attributes, record_exception

logger = get_logger('TELEMETRY')

# Keyword arguments copied onto the span when present
_RECORDED_KWARGS = {
    'dataset': "axiom.dataset",
    'dataset_name': "axiom.dataset",
    'content_type': "axiom.ingest.content_type",
    'content_encoding': "axiom.ingest.content_encoding",
    'batch_size': "axiom.ingest.batch_size",
}


def trace_api_call(operation: Optional[str] = None):
    """
    Decorator to trace an Axiom API operation.

    The wrapped coroutine runs inside an `axiom_api.<operation>` span. When the
    first positional argument exposes a `_tracer` attribute that tracer is used,
    otherwise the global one. Per-attempt spans opened by the transport become
    children of this span.

    Args:
        operation: Name of the API operation (defaults to the function name)
    """
    def decorator(func: Callable) -> Callable:
        op_name = operation or func.__name__

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            tracer = getattr(args[0], '_tracer', None) if args else None
            tracer = tracer or get_tracer()

            start_time = time.monotonic()
            success = False
            with tracer.start_as_current_span(f"axiom_api.{op_name}", record_exception=False) as span:
                span.set_attribute("axiom.operation.name", op_name)
                add_span_attributes(span, {
                    attr: str(getattr(kwargs[key], 'value', kwargs[key]))
                    for key, attr in _RECORDED_KWARGS.items()
                    if kwargs.get(key) is not None
                })
                try:
                    result = await func(*args, **kwargs)
                    span.set_status(trace.Status(trace.StatusCode.OK))
                    success = True
                    return result
                except Exception as e:
                    span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                    record_exception(span, e, escaped=True)
                    span.set_attribute("axiom.api.error_type", type(e).__name__)
                    attempts = getattr(e, 'attempts', None)
                    if attempts is not None:
                        span.set_attribute("axiom.api.attempts", attempts)
                    raise
                finally:
                    duration = time.monotonic() - start_time
                    record_operation(op_name, duration, success)
                    logger.debug(f"operation finished | op:{op_name} | success:{success} | duration:{duration:.3f}s")

        return wrapper
    return decorator

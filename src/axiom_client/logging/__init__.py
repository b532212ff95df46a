"""
Logging utilities for the Axiom client.
"""

from .client_logger import (
    get_logger,
    setup_logging,
    set_request_context,
    reset_request_context,
    get_request_context,
    request_context,
    format_fields,
    sanitize_headers,
    http_logger,
    retry_logger,
    ingest_logger,
    query_logger,
    dataset_logger
)

__all__ = [
    'get_logger',
    'setup_logging',
    'set_request_context',
    'reset_request_context',
    'get_request_context',
    'request_context',
    'format_fields',
    'sanitize_headers',
    'http_logger',
    'retry_logger',
    'ingest_logger',
    'query_logger',
    'dataset_logger'
]

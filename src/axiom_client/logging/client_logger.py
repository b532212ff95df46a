"""
Standardized logging setup for the Axiom client.
Uses Python's built-in logging with per-request context correlation.

The client loggers only carry a NullHandler and propagate to the host
application's handlers. setup_logging() installs the colored stderr handler
for scripts that want the client's own output.
"""

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Dict, Iterator, Optional, Tuple


class ColoredFormatter(logging.Formatter):
    """Colored logging formatter with timestamps."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'      # Reset
    }

    def __init__(self, use_colors=True):
        super().__init__(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def _colorize(self, record, formatter: logging.Formatter) -> str:
        if not self.use_colors:
            return formatter.format(record)

        level_color = self.COLORS.get(record.levelname, '')
        reset_color = self.COLORS['RESET']

        original_levelname = record.levelname
        record.levelname = f"{level_color}{record.levelname}{reset_color}"
        try:
            return formatter.format(record)
        finally:
            record.levelname = original_levelname

    def format(self, record):
        return self._colorize(record, super())


class RequestColoredFormatter(ColoredFormatter):
    """Colored formatter that adds dataset and request context after the component name."""

    def __init__(self, use_colors=True):
        super().__init__(use_colors)
        self.fmt = '%(asctime)s - %(name)s%(dataset_part)s%(request_part)s - %(levelname)s - %(message)s'
        self._request_formatter = logging.Formatter(self.fmt, datefmt='%Y-%m-%d %H:%M:%S')

    def format(self, record):
        dataset = getattr(record, 'dataset', '')
        request = getattr(record, 'request', '')
        record.dataset_part = f" {dataset}" if dataset else ""
        record.request_part = f" {request}" if request else ""
        return self._colorize(record, self._request_formatter)


def _resolve_log_level() -> int:
    level_name = os.getenv('AXIOM_LOG_LEVEL') or os.getenv('LOG_LEVEL', 'INFO')
    return getattr(logging, level_name.upper(), logging.INFO)


log_level_value = _resolve_log_level()

use_colors = os.getenv('LOG_COLORS', 'true').lower() in ('true', '1', 'yes', 'on')


_request_context: ContextVar[Tuple[Optional[str], Optional[str]]] = ContextVar(
    'axiom_request_context', default=(None, None)
)


class RequestContextFilter(logging.Filter):
    """
    Add dataset and request context to log records.

    Context lives in a ContextVar so concurrent calls on one event loop
    each see their own dataset and request id.
    """

    def set_context(self, dataset: Optional[str] = None, request_id: Optional[str] = None) -> Token:
        """Set context for the current request; the token restores the previous one."""
        return _request_context.set((dataset, request_id))

    def reset_context(self, token: Token):
        _request_context.reset(token)

    def filter(self, record):
        dataset, request_id = _request_context.get()
        if not getattr(record, 'dataset', None):
            record.dataset = f"dataset:{dataset}" if dataset else ""
        if not getattr(record, 'request', None):
            record.request = f"req:{request_id[:8]}" if request_id else ""
        return True


class RequestHandler(logging.StreamHandler):
    """Handler that applies request formatting and colors to the client loggers."""

    def __init__(self, use_colors=True):
        super().__init__(sys.stderr)
        self.setFormatter(RequestColoredFormatter(use_colors=use_colors))


# Global request context filter
request_filter = RequestContextFilter()


package_logger = logging.getLogger("axiom_client")
package_logger.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Get a component logger that tags records with the request context."""
    logger = logging.getLogger(f"axiom_client.{name}")
    if request_filter not in logger.filters:
        logger.addFilter(request_filter)
    return logger


def setup_logging(level: Optional[int] = None, colors: Optional[bool] = None,
                  propagate: bool = False) -> logging.Logger:
    """
    Send client logs to stderr with colors and request context.

    Args:
        level: Log level (defaults to AXIOM_LOG_LEVEL / LOG_LEVEL, then INFO)
        colors: Colorize levels (defaults to LOG_COLORS)
        propagate: Also hand records to the root logger's handlers

    Returns:
        The package logger the handler was installed on
    """
    if not any(isinstance(h, RequestHandler) for h in package_logger.handlers):
        package_logger.addHandler(RequestHandler(use_colors=use_colors if colors is None else colors))
    package_logger.setLevel(log_level_value if level is None else level)
    package_logger.propagate = propagate
    return package_logger


def set_request_context(dataset: Optional[str] = None, request_id: Optional[str] = None) -> Token:
    """Set request context for all client loggers; pass the token to reset_request_context."""
    return request_filter.set_context(dataset, request_id)


def reset_request_context(token: Token):
    """Restore the request context that was active before set_request_context."""
    request_filter.reset_context(token)


def get_request_context() -> Tuple[Optional[str], Optional[str]]:
    """Current (dataset, request_id) pair."""
    return _request_context.get()


@contextmanager
def request_context(dataset: Optional[str] = None, request_id: Optional[str] = None) -> Iterator[None]:
    """Scope the request context to a block."""
    token = set_request_context(dataset, request_id)
    try:
        yield
    finally:
        reset_request_context(token)


def format_fields(**fields) -> str:
    """Render fields in the `key:value | key:value` layout used across the client."""
    return " | ".join(f"{k}:{str(v)[:100]}" for k, v in fields.items() if v is not None)


def sanitize_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """
    Redact sensitive header values before they reach a log line.

    Args:
        headers: Original headers dictionary

    Returns:
        Copy of the headers safe for logging
    """
    sensitive_keys = {"authorization", "cookie", "x-api-key", "x-auth-token"}
    return {
        key: "[REDACTED]" if key.lower() in sensitive_keys else value
        for key, value in headers.items()
    }


# Component-specific loggers
http_logger = get_logger('HTTP')
retry_logger = get_logger('RETRY')
ingest_logger = get_logger('INGEST')
query_logger = get_logger('QUERY')
dataset_logger = get_logger('DATASETS')

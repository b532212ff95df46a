"""
Axiom client error types

Every exception raised by the client derives from AxiomError. Transient
transport failures are only surfaced once the retry budget is spent; terminal
API responses and local encoding/decoding problems surface immediately.
"""

from typing import Any, Dict, Optional

from .limits import Limits


class AxiomError(Exception):
    """Base class for all client errors."""


class ConfigurationError(AxiomError):
    """The client could not be configured (missing token, invalid URL, ...)."""


class EncodingError(AxiomError):
    """A record contains a value that cannot be put on the wire."""

    def __init__(self, message: str, index: Optional[int] = None, path: Optional[str] = None):
        self.index = index
        self.path = path
        location = []
        if index is not None:
            location.append(f"record {index}")
        if path:
            location.append(f"field {path!r}")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)


class DecodingError(AxiomError):
    """A response body is malformed or holds a value that cannot be coerced."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{message} at {path}" if path else message)


class APIError(AxiomError):
    """An error response returned by the Axiom API."""

    def __init__(
        self,
        message: Optional[str],
        status_code: int,
        method: str = "",
        path: str = "",
        trace_id: Optional[str] = None,
        response_data: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.method = method
        self.path = path
        self.trace_id = trace_id
        self.response_data = response_data
        super().__init__(self._render())

    def _render(self) -> str:
        text = f"Received {self.status_code} on {self.method} {self.path}".rstrip()
        if self.message:
            text += f": {self.message}"
        if self.trace_id:
            text += f" (trace id: {self.trace_id})"
        return text


class ClientError(APIError):
    """Terminal 4xx response (anything but 429). Never retried."""


class LimitExceededError(ClientError):
    """The ingest or query limit of the organization is exhausted (HTTP 430)."""

    def __init__(self, message: Optional[str], status_code: int, limits: Limits, kind: str, **kwargs):
        self.limits = limits
        self.kind = kind
        super().__init__(message, status_code, **kwargs)

    def _render(self) -> str:
        return f"{self.kind.capitalize()} limit exceeded: {self.limits}"


class TransportError(AxiomError):
    """
    Transient failures (network errors, timeouts, 429, 5xx) that outlived the
    retry policy.
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        cause: Optional[BaseException] = None,
        status_code: Optional[int] = None
    ):
        self.attempts = attempts
        self.cause = cause
        self.status_code = status_code
        super().__init__(f"{message} after {attempts} attempt{'s' if attempts != 1 else ''}")


class RateLimitExceededError(TransportError):
    """The last attempt was rejected with 429 and no retry budget was left."""

    def __init__(
        self,
        message: str,
        attempts: int,
        limits: Optional[Limits] = None,
        scope: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        self.limits = limits
        self.scope = scope
        if scope and limits:
            message = f"{message} for the {scope} scope: {limits}"
        elif limits:
            message = f"{message}: {limits}"
        super().__init__(message, attempts, cause=cause, status_code=429)

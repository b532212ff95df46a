"""
Axiom API HTTP transport

Issues requests against the Axiom API through a shared httpx.AsyncClient,
classifies every attempt, and drives the retry state machine from
`retry.py`. Each attempt is traced as its own span and logged, so retries stay
observable even when the call eventually succeeds.
"""

import asyncio
import json
import random
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx
from opentelemetry import trace

from .errors import (
    APIError,
    ClientError,
    DecodingError,
    LimitExceededError,
    RateLimitExceededError,
    TransportError,
)
from .limits import Limit, limit_from_response
from .logging import format_fields, http_logger, retry_logger, sanitize_headers
from .retry import Outcome, OutcomeKind, RetryPolicy, Stop, StopReason, next_step
from .telemetry import add_span_attributes, correlate_with_logging, get_tracer, record_attempt, set_span_status

TRACE_ID_HEADER = "X-Axiom-Trace-Id"

# Axiom answers 430 when the org's ingest or query limit is exhausted
STATUS_LIMIT_EXCEEDED = 430


class Response:
    """A successful API response plus the number of attempts it took."""

    def __init__(self, inner: httpx.Response, method: str, path: str, attempts: int):
        self.inner = inner
        self.method = method
        self.path = path
        self.attempts = attempts

    @property
    def status_code(self) -> int:
        return self.inner.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.inner.headers

    @property
    def content(self) -> bytes:
        return self.inner.content

    def header(self, name: str) -> Optional[str]:
        return self.inner.headers.get(name)

    def json(self) -> Any:
        """Parse the body as JSON, raising DecodingError on malformed content."""
        try:
            return json.loads(self.inner.content)
        except (UnicodeDecodeError, ValueError) as e:
            raise DecodingError(f"Invalid JSON response from {self.method} {self.path}: {e}") from e


def is_retryable_status(status_code: int) -> bool:
    """429 and every 5xx are transient."""
    return status_code == 429 or status_code >= 500


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header (delta-seconds or HTTP-date) into seconds.

    Returns:
        Non-negative delay in seconds, or None when absent or unparseable
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def _error_message(response: httpx.Response) -> Optional[str]:
    """Extract the platform's structured error message, if any."""
    try:
        body = response.json()
    except (UnicodeDecodeError, ValueError):
        text = response.text.strip()
        return text[:500] or None
    if isinstance(body, dict) and body.get("message") is not None:
        return str(body["message"])
    return None


def api_error_from_response(response: httpx.Response, method: str, path: str) -> APIError:
    """Build the matching APIError subclass for a failed response."""
    message = _error_message(response)
    trace_id = response.headers.get(TRACE_ID_HEADER)
    status = response.status_code

    try:
        response_data = response.json()
    except (UnicodeDecodeError, ValueError):
        response_data = None
    if not isinstance(response_data, dict):
        response_data = None

    kwargs = dict(method=method, path=path, trace_id=trace_id, response_data=response_data)

    if status == STATUS_LIMIT_EXCEEDED:
        limit = limit_from_response(path, response.headers)
        if limit is not None:
            return LimitExceededError(message, status, limits=limit.limits, kind=limit.kind, **kwargs)
    if 400 <= status < 500:
        return ClientError(message, status, **kwargs)
    return APIError(message, status, **kwargs)


class Transport:
    """
    Sends requests for one base URL with retry and backoff.

    Several transports may share one httpx.AsyncClient (and thus its connection
    pool); a transport holds no per-call mutable state.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient,
        retry_policy: Optional[RetryPolicy] = None,
        tracer: Optional[trace.Tracer] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        jitter: Callable[[], float] = random.random
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy()
        self._http = http_client
        self._tracer = tracer or get_tracer()
        self._sleep = sleep
        self._clock = clock
        self._jitter = jitter

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        json_data: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> Response:
        """
        Send a request, retrying transient failures per the retry policy.

        Args:
            method: HTTP method (GET, POST, ...)
            path: API path relative to the base URL
            params: Query parameters
            json_data: JSON body; mutually exclusive with `content`
            content: Raw body bytes, re-sent unchanged on every attempt
            headers: Extra headers merged over the client defaults
            timeout: Per-attempt timeout override in seconds

        Returns:
            The successful Response

        Raises:
            ClientError: Terminal 4xx response (never retried)
            TransportError: Transient failures outlived the retry policy
        """
        if json_data is not None:
            content = json.dumps(json_data, separators=(",", ":")).encode("utf-8")
            headers = {"Content-Type": "application/json", **(headers or {})}

        url = self.url(path)
        request_kwargs = {"params": params, "content": content, "headers": headers}
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        policy = self.retry_policy
        state = policy.start(self._clock())

        http_logger.debug(
            f"{method} {url} | "
            + format_fields(params=params, body_size=len(content) if content else 0,
                            headers=sanitize_headers(headers or {}))
        )

        while True:
            outcome = await self._attempt(method, path, url, state.attempt + 1, request_kwargs)
            step = next_step(policy, state, outcome, self._clock(), self._jitter())

            if isinstance(step, Stop):
                return self._finish(step, method, path)

            retry_logger.warning(
                "retrying request | "
                + format_fields(method=method, path=path, attempt=step.state.attempt,
                                wait=f"{step.interval:.3f}s", cause=_describe(outcome))
            )
            await self._sleep(step.interval)
            state = step.state

    async def _attempt(self, method: str, path: str, url: str, attempt: int, request_kwargs: dict) -> Outcome:
        with self._tracer.start_as_current_span("axiom_api.attempt") as span:
            add_span_attributes(span, {
                "http.method": method,
                "http.url": url,
                "axiom.endpoint": path,
                "axiom.attempt": attempt,
            })
            started = self._clock()
            status_code = None
            try:
                response = await self._http.request(method, url, **request_kwargs)
            except httpx.UnsupportedProtocol as e:
                outcome = Outcome.terminal(e)
            except httpx.TransportError as e:
                outcome = Outcome.retryable(e)
            else:
                status_code = response.status_code
                outcome = self._classify(response)
                span.set_attribute("http.status_code", status_code)
                span.set_attribute("axiom.response.size", len(response.content))

            duration = self._clock() - started
            span.set_attribute("axiom.attempt.outcome", outcome.kind.value)
            set_span_status(span, outcome.kind is OutcomeKind.SUCCESS, _describe(outcome))
            if outcome.kind is not OutcomeKind.SUCCESS:
                if outcome.retry_after is not None:
                    span.set_attribute("axiom.retry_after", outcome.retry_after)
                if isinstance(outcome.value, BaseException):
                    span.record_exception(outcome.value)

        record_attempt(method, path, outcome.kind.value, duration, status_code)
        http_logger.debug(
            "attempt finished | "
            + format_fields(method=method, path=path, attempt=attempt, outcome=outcome.kind.value,
                            status=status_code, duration=f"{duration:.3f}s")
        )
        return outcome

    @staticmethod
    def _classify(response: httpx.Response) -> Outcome:
        status = response.status_code
        if 200 <= status < 300:
            return Outcome.success(response)
        if is_retryable_status(status):
            retry_after = parse_retry_after(response.headers.get("Retry-After")) if status == 429 else None
            return Outcome.retryable(response, retry_after)
        return Outcome.terminal(response)

    def _finish(self, step: Stop, method: str, path: str) -> Response:
        value = step.outcome.value

        if step.reason is StopReason.SUCCEEDED:
            if step.attempts > 1:
                retry_logger.info("request succeeded after retries | "
                                  + format_fields(method=method, path=path, attempts=step.attempts))
            return Response(value, method, path, step.attempts)

        if isinstance(value, httpx.Response):
            error = api_error_from_response(value, method, path)
            http_logger.warning(f"response {value.status_code} | " + format_fields(**correlate_with_logging(
                {"method": method, "path": path, "attempts": step.attempts, "message": error.message})))
            if step.reason is StopReason.TERMINAL:
                raise error

            if value.status_code == 429:
                limit: Optional[Limit] = limit_from_response(path, value.headers)
                raise RateLimitExceededError(
                    f"Rate limit exceeded on {method} {path}",
                    step.attempts,
                    limits=limit.limits if limit else None,
                    scope=limit.scope if limit else None,
                    cause=error
                ) from error
            raise TransportError(f"{method} {path} failed with status {value.status_code}",
                                 step.attempts, cause=error, status_code=value.status_code) from error

        http_logger.error("HTTP error | " + format_fields(**correlate_with_logging(
            {"method": method, "path": path, "attempts": step.attempts, "error": repr(value)})))
        raise TransportError(f"{method} {path} failed: {value!r}", step.attempts, cause=value) from value


def _describe(outcome: Outcome) -> str:
    value = outcome.value
    if isinstance(value, httpx.Response):
        return f"status {value.status_code}"
    return type(value).__name__ if value is not None else outcome.kind.value

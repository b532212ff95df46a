"""
Rate-limit information parsed from Axiom response headers.

Ingest endpoints report `X-IngestLimit-*`, query endpoints `X-QueryLimit-*` and
everything else the scoped `X-RateLimit-*` family.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional

HEADER_QUERY_LIMIT = "X-QueryLimit-Limit"
HEADER_QUERY_REMAINING = "X-QueryLimit-Remaining"
HEADER_QUERY_RESET = "X-QueryLimit-Reset"

HEADER_INGEST_LIMIT = "X-IngestLimit-Limit"
HEADER_INGEST_REMAINING = "X-IngestLimit-Remaining"
HEADER_INGEST_RESET = "X-IngestLimit-Reset"

HEADER_RATE_SCOPE = "X-RateLimit-Scope"
HEADER_RATE_LIMIT = "X-RateLimit-Limit"
HEADER_RATE_REMAINING = "X-RateLimit-Remaining"
HEADER_RATE_RESET = "X-RateLimit-Reset"


@dataclass(frozen=True)
class Limits:
    """Rate-limit window reported by the server."""
    limit: int
    remaining: int
    reset: datetime

    def is_exceeded(self) -> bool:
        return self.remaining == 0 and self.reset > datetime.now(timezone.utc)

    def __str__(self) -> str:
        return f"{self.remaining}/{self.limit} remaining until {self.reset.isoformat()}"

    @classmethod
    def from_headers(
        cls,
        headers: Mapping[str, str],
        header_limit: str,
        header_remaining: str,
        header_reset: str
    ) -> Optional["Limits"]:
        """Parse a limit triple; returns None when any header is missing or malformed."""
        try:
            limit = int(headers[header_limit])
            remaining = int(headers[header_remaining])
            reset = datetime.fromtimestamp(int(headers[header_reset]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError, OverflowError):
            return None
        return cls(limit=limit, remaining=remaining, reset=reset)


@dataclass(frozen=True)
class Limit:
    """A parsed limit plus the kind of limit it describes."""
    kind: str  # "ingest", "query" or "rate"
    limits: Limits
    scope: Optional[str] = None


def limit_from_response(path: str, headers: Mapping[str, str]) -> Optional[Limit]:
    """
    Pick the limit family matching the request path and parse it.

    Args:
        path: Request path (query string excluded)
        headers: Response headers (case-insensitive mapping)

    Returns:
        Parsed Limit, or None if the response carried no usable limit headers
    """
    if path.endswith("/ingest") or "/v1/ingest/" in path:
        limits = Limits.from_headers(headers, HEADER_INGEST_LIMIT, HEADER_INGEST_REMAINING, HEADER_INGEST_RESET)
        return Limit("ingest", limits) if limits else None

    if path.endswith("/query") or path.endswith("/_apl"):
        limits = Limits.from_headers(headers, HEADER_QUERY_LIMIT, HEADER_QUERY_REMAINING, HEADER_QUERY_RESET)
        return Limit("query", limits) if limits else None

    scope = headers.get(HEADER_RATE_SCOPE)
    limits = Limits.from_headers(headers, HEADER_RATE_LIMIT, HEADER_RATE_REMAINING, HEADER_RATE_RESET)
    if scope and limits:
        return Limit("rate", limits, scope=scope)
    return None

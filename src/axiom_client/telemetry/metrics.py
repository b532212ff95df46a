"""
OpenTelemetry metrics for Axiom client operations

Instruments are created lazily on first use against the global meter
provider, so they pick up a provider installed after import.
"""

from typing import Any, Dict, Optional

from ..logging import get_logger
from .config import get_meter

logger = get_logger('TELEMETRY')

_instruments: Optional[Dict[str, Any]] = None


def _get_instruments() -> Dict[str, Any]:
    global _instruments
    if _instruments is None:
        meter = get_meter()
        _instruments = {
            "operations": meter.create_counter(
                name="axiom_client_operations_total",
                description="Total number of client operations (ingest, query, datasets)",
                unit="1"
            ),
            "operation_duration": meter.create_histogram(
                name="axiom_client_operation_duration_seconds",
                description="Duration of client operations including retries",
                unit="s"
            ),
            "attempts": meter.create_counter(
                name="axiom_api_attempts_total",
                description="Total number of HTTP attempts by outcome",
                unit="1"
            ),
            "attempt_duration": meter.create_histogram(
                name="axiom_api_attempt_duration_seconds",
                description="Duration of individual HTTP attempts",
                unit="s"
            ),
            "ingested_events": meter.create_counter(
                name="axiom_ingest_events_total",
                description="Events reported by the server as ingested or failed",
                unit="1"
            ),
        }
    return _instruments


def record_operation(operation: str, duration: float, success: bool):
    """
    Record one finished client operation.

    Args:
        operation: Operation name (ingest, query, ...)
        duration: Wall time including retries, in seconds
        success: Whether the operation returned normally
    """
    instruments = _get_instruments()
    attributes = {"operation": operation, "status": "success" if success else "error"}
    instruments["operations"].add(1, attributes)
    instruments["operation_duration"].record(duration, attributes)


def record_attempt(method: str, path: str, outcome: str, duration: float, status_code: Optional[int] = None):
    """
    Record a single HTTP attempt.

    Args:
        method: HTTP method
        path: API path without the query string
        outcome: success, retryable or terminal
        duration: Attempt duration in seconds
        status_code: HTTP status, None for network-level failures
    """
    instruments = _get_instruments()
    attributes = {
        "method": method,
        "path": path,
        "outcome": outcome,
        "status_code": str(status_code) if status_code is not None else "none"
    }
    instruments["attempts"].add(1, attributes)
    instruments["attempt_duration"].record(duration, attributes)


def record_ingest_status(dataset: str, ingested: int, failed: int):
    """Record per-call ingest counts reported by the server."""
    instruments = _get_instruments()
    instruments["ingested_events"].add(ingested, {"dataset": dataset, "result": "ingested"})
    if failed:
        instruments["ingested_events"].add(failed, {"dataset": dataset, "result": "failed"})
    logger.debug(f"recorded ingest metrics | dataset:{dataset} | ingested:{ingested} | failed:{failed}")

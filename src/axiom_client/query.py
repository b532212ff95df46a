"""
Axiom APL query requests

Builds the query string and JSON body for the `/v1/datasets/_apl` endpoint and
offers a small builder for composing simple APL pipelines.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .encoding import format_timestamp

APL_PATH = "/v1/datasets/_apl"

HISTORY_QUERY_ID_HEADER = "X-Axiom-History-Query-Id"


class AplResultFormat(str, Enum):
    """Result layout requested from the server."""
    LEGACY = "legacy"
    TABULAR = "tabular"


TimeBound = Union[datetime, str, None]


@dataclass(frozen=True)
class QueryOptions:
    """
    Optional parameters of an APL query.

    Attributes:
        start_time: Start of the queried time range (datetime or RFC3339 string)
        end_time: End of the queried time range
        cursor: Row cursor used for pagination
        include_cursor: Include the event matching the cursor in the result
        no_cache: Bypass the server-side query cache
        save: Save the query in the history; its id comes back on the result
        format: Result layout, legacy or tabular
    """
    start_time: TimeBound = None
    end_time: TimeBound = None
    cursor: Optional[str] = None
    include_cursor: bool = False
    no_cache: bool = False
    save: bool = False
    format: AplResultFormat = AplResultFormat.LEGACY


def _time_bound(value: TimeBound) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return format_timestamp(value)


def build_query_request(apl: str, options: Optional[QueryOptions] = None) -> Tuple[Dict[str, str], Dict[str, Any]]:
    """
    Build query parameters and JSON body for an APL query.

    Args:
        apl: APL query text, passed through unchanged
        options: Query options (defaults apply when omitted)

    Returns:
        Tuple of (query parameters, request body)
    """
    if not apl or not apl.strip():
        raise ValueError("APL query must not be empty")
    options = options or QueryOptions()
    format_ = AplResultFormat(options.format)

    params = {
        "nocache": "true" if options.no_cache else "false",
        "saveAsKind": "true" if options.save else "false",
        "format": format_.value,
    }
    body = {
        "apl": apl,
        "startTime": _time_bound(options.start_time),
        "endTime": _time_bound(options.end_time),
        "cursor": options.cursor,
        "includeCursor": options.include_cursor,
    }
    return params, body


class AplBuilder:
    """
    Compose simple APL pipelines.

    Example:
        AplBuilder("http-logs").where("status", "==", "500").or_where("status", "==", "503").count().build()
        -> ['http-logs'] | where status == "500" or status == "503" | count
    """

    def __init__(self, dataset: str):
        if not dataset:
            raise ValueError("dataset name must not be empty")
        self.dataset = dataset
        self._stages: List[str] = []

    @staticmethod
    def _condition(field: str, op: str, value: Any) -> str:
        escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
        return f'{field} {op} "{escaped}"'

    def where(self, field: str, op: str, value: Any) -> "AplBuilder":
        self._stages.append(f"where {self._condition(field, op, value)}")
        return self

    def and_where(self, field: str, op: str, value: Any) -> "AplBuilder":
        """Extend the preceding `where` with an `and` condition."""
        return self._chain("and", self._condition(field, op, value))

    def or_where(self, field: str, op: str, value: Any) -> "AplBuilder":
        """Extend the preceding `where` with an `or` condition."""
        return self._chain("or", self._condition(field, op, value))

    def _chain(self, keyword: str, condition: str) -> "AplBuilder":
        if not self._stages or not self._stages[-1].startswith("where "):
            raise ValueError(f"{keyword} must follow a where stage")
        self._stages[-1] += f" {keyword} {condition}"
        return self

    def extend(self, *expressions: str) -> "AplBuilder":
        if not expressions:
            raise ValueError("extend needs at least one expression")
        self._stages.append(f"extend {', '.join(expressions)}")
        return self

    def take(self, count: int) -> "AplBuilder":
        if count < 0:
            raise ValueError("take count must be >= 0")
        self._stages.append(f"take {int(count)}")
        return self

    def count(self) -> "AplBuilder":
        self._stages.append("count")
        return self

    def project(self, *fields: str) -> "AplBuilder":
        if not fields:
            raise ValueError("project needs at least one field")
        self._stages.append(f"project {', '.join(fields)}")
        return self

    def summarize(self, aggregation: str, by: Union[str, Sequence[str], None] = None) -> "AplBuilder":
        stage = f"summarize {aggregation}"
        if isinstance(by, str):
            by = [by]
        if by:
            stage += f" by {', '.join(by)}"
        self._stages.append(stage)
        return self

    def build(self) -> str:
        dataset = self.dataset.replace("'", "\\'")
        return " | ".join([f"['{dataset}']"] + self._stages)

    def __str__(self) -> str:
        return self.build()

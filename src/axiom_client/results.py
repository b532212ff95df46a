"""
Query result decoding

Turns the JSON body of an APL query into a QueryResult. Tabular results carry a
declared type per column and every cell is coerced to the kind its column
declares; legacy results carry no schema, so their cells are tagged from the
JSON wire type. Each decoded cell is a (CellKind, value) pair whose Python type
matches the tag.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum, IntFlag
from typing import Annotated, Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import BeforeValidator, Field, field_validator

from .errors import DecodingError
from .models import AxiomModel, parse_model
from .query import AplResultFormat

INT64_MIN = -(2 ** 63)
UINT64_MAX = 2 ** 64 - 1


class CellKind(str, Enum):
    """Type tag of a decoded cell."""
    STRING = "string"
    INT64 = "int64"
    FLOAT64 = "float64"
    BOOL = "bool"
    NULL = "null"
    TIMESTAMP = "timestamp"
    DYNAMIC = "dynamic"  # objects, arrays and undeclared types, passed through


# Declared column types as the server reports them
_TYPE_KINDS = {
    "string": CellKind.STRING,
    "integer": CellKind.INT64,
    "int": CellKind.INT64,
    "long": CellKind.INT64,
    "float": CellKind.FLOAT64,
    "real": CellKind.FLOAT64,
    "double": CellKind.FLOAT64,
    "boolean": CellKind.BOOL,
    "bool": CellKind.BOOL,
    "datetime": CellKind.TIMESTAMP,
    "timestamp": CellKind.TIMESTAMP,
    "null": CellKind.NULL,
}

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:?\d{2})?$"
)


# Numeric strings as JSON writes numbers: ASCII digits, no padding or separators
_INT_STRING = re.compile(r"-?[0-9]+\Z")
_FLOAT_STRING = re.compile(r"-?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?\Z")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC3339 timestamp. Sub-microsecond digits are truncated and a
    missing offset is taken as UTC.

    Raises:
        ValueError: If the string is not an RFC3339 timestamp
    """
    match = _RFC3339.match(value.strip())
    if not match:
        raise ValueError(f"invalid RFC3339 timestamp {value!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micros = int((fraction or "0")[:6].ljust(6, "0"))

    tz = timezone.utc
    if offset and offset not in ("Z", "z"):
        sign = -1 if offset[0] == "-" else 1
        digits = offset[1:].replace(":", "")
        tz = timezone(sign * timedelta(hours=int(digits[:2]), minutes=int(digits[2:])))

    return datetime(int(year), int(month), int(day), int(hour), int(minute), int(second), micros, tzinfo=tz)


def _timestamp_before(value: Any) -> Any:
    if isinstance(value, str):
        return parse_timestamp(value)
    return value


Timestamp = Annotated[datetime, BeforeValidator(_timestamp_before)]


def _null_to_list(value):
    return [] if value is None else value


def NullList(item):
    """List type that also accepts JSON null."""
    return Annotated[List[item], BeforeValidator(_null_to_list)]


def declared_kinds(type_name: Optional[str]) -> Tuple[CellKind, ...]:
    """Map a declared column type (possibly a `a|b` union) to its cell kinds."""
    if not type_name:
        return (CellKind.DYNAMIC,)
    kinds = []
    for member in type_name.split("|"):
        kind = _TYPE_KINDS.get(member.strip().lower(), CellKind.DYNAMIC)
        if kind not in kinds:
            kinds.append(kind)
    return tuple(kinds)


def wire_kind(value: Any) -> CellKind:
    """The kind a JSON value has on the wire."""
    if value is None:
        return CellKind.NULL
    if isinstance(value, bool):
        return CellKind.BOOL
    if isinstance(value, int):
        return CellKind.INT64
    if isinstance(value, float):
        return CellKind.FLOAT64
    if isinstance(value, str):
        return CellKind.STRING
    return CellKind.DYNAMIC


def _coerce(value: Any, kind: CellKind) -> Any:
    """Convert a JSON value to `kind`; raises ValueError/TypeError if impossible."""
    if kind is CellKind.DYNAMIC:
        return value
    if kind is CellKind.STRING:
        if isinstance(value, str):
            return value
        raise TypeError(f"expected string, got {wire_kind(value).value}")
    if kind is CellKind.BOOL:
        if isinstance(value, bool):
            return value
        raise TypeError(f"expected bool, got {wire_kind(value).value}")
    if kind is CellKind.INT64:
        if isinstance(value, bool):
            raise TypeError("expected int64, got bool")
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"expected int64, got non-integral float {value}")
            value = int(value)
        elif isinstance(value, str):
            if not _INT_STRING.match(value):
                raise ValueError(f"expected int64, got string {value!r}")
            value = int(value)
        if not isinstance(value, int):
            raise TypeError(f"expected int64, got {wire_kind(value).value}")
        if not INT64_MIN <= value <= UINT64_MAX:
            raise ValueError(f"integer {value} out of 64-bit range")
        return value
    if kind is CellKind.FLOAT64:
        if isinstance(value, bool):
            raise TypeError("expected float64, got bool")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            if value in ("NaN", "Infinity", "-Infinity"):
                return float(value.replace("Infinity", "inf"))
            if _FLOAT_STRING.match(value):
                return float(value)
            raise ValueError(f"expected float64, got string {value!r}")
        raise TypeError(f"expected float64, got {wire_kind(value).value}")
    if kind is CellKind.TIMESTAMP:
        if isinstance(value, str):
            return parse_timestamp(value)
        raise TypeError(f"expected timestamp, got {wire_kind(value).value}")
    raise TypeError(f"expected null, got {wire_kind(value).value}")


def coerce_cell(value: Any, kinds: Sequence[CellKind], path: str = "") -> Tuple[CellKind, Any]:
    """
    Coerce a cell to one of its declared kinds.

    A null cell is always NULL. For union types the member matching the value's
    wire shape wins; otherwise the members are tried in declaration order.

    Raises:
        DecodingError: If no declared kind accepts the value
    """
    if value is None:
        return CellKind.NULL, None

    shape = wire_kind(value)
    if shape in kinds:
        candidates = [shape]
    elif shape is CellKind.INT64 and CellKind.FLOAT64 in kinds:
        candidates = [CellKind.FLOAT64]
    else:
        candidates = [kind for kind in kinds if kind is not CellKind.NULL]

    error = None
    for kind in candidates:
        try:
            return kind, _coerce(value, kind)
        except (TypeError, ValueError, OverflowError) as e:
            error = e
    declared = "|".join(kind.value for kind in kinds)
    raise DecodingError(f"Cannot decode {value!r} as {declared}: {error}", path=path or None)


class Row:
    """
    One decoded row: field names, per-cell kinds and native values.

    Cells are addressed by position or by field name.
    """

    __slots__ = ("fields", "kinds", "values")

    def __init__(self, fields: Sequence[str], kinds: Sequence[CellKind], values: Sequence[Any]):
        self.fields = tuple(fields)
        self.kinds = tuple(kinds)
        self.values = tuple(values)

    def _index(self, key: Union[int, str]) -> int:
        if isinstance(key, int):
            return key
        try:
            return self.fields.index(key)
        except ValueError:
            raise KeyError(key) from None

    def __getitem__(self, key: Union[int, str]) -> Any:
        return self.values[self._index(key)]

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def kind(self, key: Union[int, str]) -> CellKind:
        return self.kinds[self._index(key)]

    def cells(self) -> Iterator[Tuple[str, CellKind, Any]]:
        return zip(self.fields, self.kinds, self.values)

    def as_dict(self) -> Dict[str, Any]:
        return dict(zip(self.fields, self.values))

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other):
        if not isinstance(other, Row):
            return NotImplemented
        return (self.fields, self.kinds, self.values) == (other.fields, other.kinds, other.values)

    def __repr__(self):
        cells = ", ".join(f"{name}={value!r}:{kind.value}" for name, kind, value in self.cells())
        return f"Row({cells})"


class CacheStatus(IntFlag):
    """Cache status bits of a query."""
    NONE = 0
    MISS = 1
    MATERIALIZED = 2
    RESULTS = 4
    WAL_CACHED = 8


class QueryMessage(AxiomModel):
    """A message attached to the status of a query."""
    priority: str = ""
    count: int = 0
    code: str = ""
    text: Optional[str] = None


class QueryStatus(AxiomModel):
    """Execution statistics of a query."""
    elapsed_time: int = Field(0, alias="elapsedTime", description="Execution time in microseconds")
    blocks_examined: int = Field(0, alias="blocksExamined")
    rows_examined: int = Field(0, alias="rowsExamined")
    rows_matched: int = Field(0, alias="rowsMatched")
    num_groups: int = Field(0, alias="numGroups")
    is_partial: bool = Field(False, alias="isPartial")
    continuation_token: Optional[str] = Field(None, alias="continuationToken")
    is_estimate: bool = Field(False, alias="isEstimate")
    cache_status: int = Field(0, alias="cacheStatus")
    min_block_time: Optional[Timestamp] = Field(None, alias="minBlockTime")
    max_block_time: Optional[Timestamp] = Field(None, alias="maxBlockTime")
    messages: NullList(QueryMessage) = Field(default_factory=list)
    max_cursor: Optional[str] = Field(None, alias="maxCursor")
    min_cursor: Optional[str] = Field(None, alias="minCursor")

    @property
    def cache(self) -> CacheStatus:
        return CacheStatus(self.cache_status)


class EntryGroupAgg(AxiomModel):
    """An aggregation value of a group."""
    alias: str = Field(..., alias="op")
    value: Any = None


class EntryGroup(AxiomModel):
    """A group of queried events; `groups` nests sub-groups recursively."""
    id: int = 0
    group: Dict[str, Any] = Field(default_factory=dict)
    aggregations: NullList(EntryGroupAgg) = Field(default_factory=list)
    groups: NullList("EntryGroup") = Field(default_factory=list)

    @field_validator("group", mode="before")
    @classmethod
    def _null_group(cls, value):
        return {} if value is None else value


EntryGroup.model_rebuild()


class Interval(AxiomModel):
    """One interval of a time series."""
    start_time: Timestamp = Field(..., alias="startTime")
    end_time: Timestamp = Field(..., alias="endTime")
    groups: NullList(EntryGroup) = Field(default_factory=list)


class Timeseries(AxiomModel):
    """Time series buckets of a legacy result."""
    series: NullList(Interval) = Field(default_factory=list)
    totals: NullList(EntryGroup) = Field(default_factory=list)


class Agg(AxiomModel):
    """Aggregation that produced a tabular column."""
    name: str
    fields: NullList(str) = Field(default_factory=list)
    args: NullList(Any) = Field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.name}({', '.join(self.fields)})"


class TableField(AxiomModel):
    """A column of a tabular result and its declared type."""
    name: str
    type: str = ""
    agg: Optional[Agg] = None

    @property
    def kinds(self) -> Tuple[CellKind, ...]:
        return declared_kinds(self.type)


class Source(AxiomModel):
    name: str


class Group(AxiomModel):
    name: str


class Order(AxiomModel):
    field: str
    desc: bool = False


class Range(AxiomModel):
    field: str
    start: Timestamp
    end: Timestamp


class Bucket(AxiomModel):
    field: str
    size: int


class _TableSchema(AxiomModel):
    name: str = ""
    sources: NullList(Source) = Field(default_factory=list)
    fields: NullList(TableField) = Field(default_factory=list)
    order: NullList(Order) = Field(default_factory=list)
    groups: NullList(Group) = Field(default_factory=list)
    range: Optional[Range] = None
    buckets: Optional[Bucket] = None


@dataclass
class Table:
    """A tabular row-group with its own field schema."""
    name: str
    fields: List[TableField]
    rows: List[Row]
    sources: List[Source] = field(default_factory=list)
    order: List[Order] = field(default_factory=list)
    groups: List[Group] = field(default_factory=list)
    range: Optional[Range] = None
    buckets: Optional[Bucket] = None

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def column(self, name: str) -> List[Any]:
        """Values of the named column, in row order."""
        for index, table_field in enumerate(self.fields):
            if table_field.name == name:
                return [row.values[index] for row in self.rows]
        raise KeyError(name)


@dataclass
class Entry:
    """An event matched by a legacy query."""
    time: datetime
    sys_time: Optional[datetime]
    row_id: str
    data: Dict[str, Any]
    row: Row


@dataclass
class QueryResult:
    """Typed result of one query call."""
    status: QueryStatus
    format: AplResultFormat = AplResultFormat.LEGACY
    matches: List[Entry] = field(default_factory=list)
    buckets: Optional[Timeseries] = None
    tables: List[Table] = field(default_factory=list)
    dataset_names: List[str] = field(default_factory=list)
    saved_query_id: Optional[str] = None
    trace_id: Optional[str] = None

    @property
    def rows(self) -> List[Row]:
        """All rows in order: table rows for tabular results, matches otherwise."""
        if self.format is AplResultFormat.TABULAR:
            return [row for table in self.tables for row in table.rows]
        return [entry.row for entry in self.matches]


def _expect_list(value: Any, path: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodingError(f"Expected array, got {type(value).__name__}", path=path)
    return value


def _decode_timestamp(value: Any, path: str) -> datetime:
    try:
        return _coerce(value, CellKind.TIMESTAMP)
    except (TypeError, ValueError) as e:
        raise DecodingError(f"Invalid timestamp: {e}", path=path) from e


def _legacy_kind(value: Any, path: str) -> CellKind:
    kind = wire_kind(value)
    if kind is CellKind.INT64 and not INT64_MIN <= value <= UINT64_MAX:
        raise DecodingError(f"Integer {value} out of 64-bit range", path=path)
    return kind


def _decode_entry(raw: Any, path: str) -> Entry:
    if not isinstance(raw, dict):
        raise DecodingError(f"Expected object, got {type(raw).__name__}", path=path)
    if "_time" not in raw:
        raise DecodingError("Missing field _time", path=path)

    time = _decode_timestamp(raw["_time"], f"{path}._time")
    sys_time = _decode_timestamp(raw["_sysTime"], f"{path}._sysTime") if raw.get("_sysTime") is not None else None

    data = raw.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise DecodingError(f"Expected object, got {type(data).__name__}", path=f"{path}.data")

    fields = ["_time"] + list(data.keys())
    kinds = [CellKind.TIMESTAMP] + [_legacy_kind(value, f"{path}.data.{key}") for key, value in data.items()]
    values = [time] + list(data.values())

    return Entry(
        time=time,
        sys_time=sys_time,
        row_id=str(raw.get("_rowId") or ""),
        data=data,
        row=Row(fields, kinds, values),
    )


def _decode_table(raw: Any, path: str) -> Table:
    if not isinstance(raw, dict):
        raise DecodingError(f"Expected object, got {type(raw).__name__}", path=path)

    schema = parse_model(_TableSchema, {k: v for k, v in raw.items() if k != "columns"}, path)
    columns = _expect_list(raw.get("columns"), f"{path}.columns")

    if columns and len(columns) != len(schema.fields):
        raise DecodingError(f"Table declares {len(schema.fields)} fields but has {len(columns)} columns",
                            path=f"{path}.columns")

    height = None
    for index, column in enumerate(columns):
        column = _expect_list(column, f"{path}.columns[{index}]")
        if height is None:
            height = len(column)
        elif len(column) != height:
            raise DecodingError(f"Column has {len(column)} values, expected {height}",
                                path=f"{path}.columns[{index}]")

    names = [table_field.name for table_field in schema.fields]
    declared = [table_field.kinds for table_field in schema.fields]
    rows = []
    for r in range(height or 0):
        kinds, values = [], []
        for c, column in enumerate(columns):
            kind, value = coerce_cell(column[r], declared[c], f"{path}.columns[{c}][{r}]")
            kinds.append(kind)
            values.append(value)
        rows.append(Row(names, kinds, values))

    return Table(
        name=schema.name,
        fields=schema.fields,
        rows=rows,
        sources=schema.sources,
        order=schema.order,
        groups=schema.groups,
        range=schema.range,
        buckets=schema.buckets,
    )


def decode_query_result(
    body: Union[bytes, str],
    *,
    saved_query_id: Optional[str] = None,
    trace_id: Optional[str] = None
) -> QueryResult:
    """
    Decode an APL query response body.

    Args:
        body: Raw response body
        saved_query_id: Value of the history query id header, if any
        trace_id: Value of the trace id header, if any

    Returns:
        QueryResult with typed rows

    Raises:
        DecodingError: If the body is malformed or a cell does not fit its declared type
    """
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodingError(f"Query result is not valid UTF-8: {e}") from e
    try:
        data = json.loads(body)
    except ValueError as e:
        raise DecodingError(f"Malformed query result: {e}") from e
    if not isinstance(data, dict):
        raise DecodingError(f"Query result must be a JSON object, got {type(data).__name__}")

    status = parse_model(QueryStatus, data.get("status") or {}, "status")

    if "tables" in data or data.get("format") == AplResultFormat.TABULAR.value:
        format_ = AplResultFormat.TABULAR
    else:
        format_ = AplResultFormat.LEGACY

    tables = [
        _decode_table(raw, f"tables[{index}]")
        for index, raw in enumerate(_expect_list(data.get("tables"), "tables"))
    ]
    matches = [
        _decode_entry(raw, f"matches[{index}]")
        for index, raw in enumerate(_expect_list(data.get("matches"), "matches"))
    ]
    buckets = parse_model(Timeseries, data["buckets"], "buckets") if data.get("buckets") is not None else None

    dataset_names = _expect_list(data.get("datasetNames"), "datasetNames")

    return QueryResult(
        status=status,
        format=format_,
        matches=matches,
        buckets=buckets,
        tables=tables,
        dataset_names=[str(name) for name in dataset_names],
        saved_query_id=saved_query_id,
        trace_id=trace_id,
    )

"""
Event encoding for ingestion.

Records are serialized one at a time into NDJSON (preferred), a JSON array or
CSV, and optionally pushed through an incremental gzip or zstd compressor.
The input is consumed lazily, so a generator of records is never turned into a
list; the whole batch is validated and encoded before the transport sees a
single byte.
"""

import csv
import io
import json
import math
import zlib
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Iterable, Iterator, List, Mapping, Optional

import zstandard

from .errors import EncodingError

# The field the server reads the event time from when no override is given
TIMESTAMP_FIELD = "_time"

INT64_MIN = -(2 ** 63)
UINT64_MAX = 2 ** 64 - 1


class ContentType(str, Enum):
    """Supported payload serializations."""
    JSON = "application/json"
    NDJSON = "application/x-ndjson"
    CSV = "text/csv"

    @classmethod
    def parse(cls, value: str) -> "ContentType":
        try:
            return cls(value)
        except ValueError:
            raise EncodingError(f"Invalid content type: {value}") from None


class ContentEncoding(str, Enum):
    """Supported payload compressions. IDENTITY means no Content-Encoding header."""
    IDENTITY = ""
    GZIP = "gzip"
    ZSTD = "zstd"

    @classmethod
    def parse(cls, value: str) -> "ContentEncoding":
        try:
            return cls(value)
        except ValueError:
            raise EncodingError(f"Invalid content encoding: {value}") from None


@dataclass(frozen=True)
class IngestOptions:
    """
    Server-side ingestion options.

    Attributes:
        timestamp_field: Field the server extracts the event time from
        timestamp_format: Layout the server parses that field with
        csv_delimiter: Delimiter for CSV payloads (also used by the encoder)
    """
    timestamp_field: Optional[str] = None
    timestamp_format: Optional[str] = None
    csv_delimiter: Optional[str] = None

    def __post_init__(self):
        if self.csv_delimiter is not None and len(self.csv_delimiter) != 1:
            raise ValueError("csv_delimiter must be a single character")

    def to_params(self) -> dict:
        """Query parameters for the ingest endpoint."""
        params = {}
        if self.timestamp_field:
            params["timestamp-field"] = self.timestamp_field
        if self.timestamp_format:
            params["timestamp-format"] = self.timestamp_format
        if self.csv_delimiter:
            params["csv-delimiter"] = self.csv_delimiter
        return params


@dataclass(frozen=True)
class EncodedBatch:
    """Serialized (and possibly compressed) records, ready for the wire."""
    data: bytes
    content_type: ContentType
    content_encoding: ContentEncoding
    count: int

    def headers(self) -> dict:
        headers = {"Content-Type": self.content_type.value}
        if self.content_encoding is not ContentEncoding.IDENTITY:
            headers["Content-Encoding"] = self.content_encoding.value
        return headers

    def __len__(self) -> int:
        return len(self.data)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as RFC3339; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def normalize_value(value: Any, path: str = "", index: Optional[int] = None) -> Any:
    """
    Validate a record value and convert it to a JSON-native structure.

    Raises:
        EncodingError: If the value (or anything nested in it) is not supported
    """
    if value is None or isinstance(value, (str, bool)):
        return value
    if isinstance(value, int):
        if not INT64_MIN <= value <= UINT64_MAX:
            raise EncodingError("Integer out of 64-bit range", index=index, path=path)
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise EncodingError("Non-finite float cannot be encoded", index=index, path=path)
        return value
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        out = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise EncodingError(f"Field names must be strings, got {type(key).__name__}",
                                    index=index, path=path)
            out[key] = normalize_value(item, f"{path}.{key}" if path else key, index)
        return out
    if isinstance(value, (list, tuple)):
        return [normalize_value(item, f"{path}[{i}]", index) for i, item in enumerate(value)]
    raise EncodingError(f"Unsupported value type {type(value).__name__}", index=index, path=path or None)


def normalize_record(record: Any, index: Optional[int] = None) -> dict:
    if not isinstance(record, Mapping):
        raise EncodingError(f"Records must be mappings, got {type(record).__name__}", index=index)
    return normalize_value(record, "", index)


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def _iter_ndjson(records: Iterable[Any]) -> Iterator[bytes]:
    for index, record in enumerate(records):
        prefix = "\n" if index else ""
        yield (prefix + _dumps(normalize_record(record, index))).encode("utf-8")


def _iter_json(records: Iterable[Any]) -> Iterator[bytes]:
    yield b"["
    for index, record in enumerate(records):
        prefix = "," if index else ""
        yield (prefix + _dumps(normalize_record(record, index))).encode("utf-8")
    yield b"]"


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return _dumps(value)
    return str(value)


def _iter_csv(records: Iterable[Any], delimiter: str) -> Iterator[bytes]:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    header: Optional[List[str]] = None

    for index, record in enumerate(records):
        row = normalize_record(record, index)
        if header is None:
            header = list(row.keys())
            writer.writerow(header)
        else:
            unknown = [key for key in row if key not in header]
            if unknown:
                raise EncodingError(
                    f"CSV records must share the first record's columns, got new column {unknown[0]!r}",
                    index=index
                )
        writer.writerow([_csv_cell(row.get(column)) for column in header])
        yield buffer.getvalue().encode("utf-8")
        buffer.seek(0)
        buffer.truncate()


def iter_encoded(
    records: Iterable[Any],
    content_type: ContentType = ContentType.NDJSON,
    options: Optional[IngestOptions] = None
) -> Iterator[bytes]:
    """
    Lazily serialize records into wire chunks.

    Args:
        records: Any finite iterable of mappings, consumed once
        content_type: Target serialization
        options: Ingest options (the CSV delimiter is honoured here)

    Yields:
        Encoded byte chunks; concatenated they form the payload
    """
    if content_type is ContentType.NDJSON:
        return _iter_ndjson(records)
    if content_type is ContentType.JSON:
        return _iter_json(records)
    if content_type is ContentType.CSV:
        delimiter = (options.csv_delimiter if options else None) or ","
        return _iter_csv(records, delimiter)
    raise EncodingError(f"Invalid content type: {content_type}")


class _Counter:
    """Iterable wrapper that counts the items pulled through it."""

    def __init__(self, iterable: Iterable[Any]):
        self._iterable = iterable
        self.count = 0

    def __iter__(self):
        for item in self._iterable:
            self.count += 1
            yield item


def encode_events(
    records: Iterable[Any],
    content_type: ContentType = ContentType.NDJSON,
    content_encoding: ContentEncoding = ContentEncoding.GZIP,
    options: Optional[IngestOptions] = None
) -> EncodedBatch:
    """
    Encode records into an EncodedBatch.

    Args:
        records: Finite iterable of mappings; generators are consumed in one pass
        content_type: Target serialization
        content_encoding: GZIP or ZSTD to compress, IDENTITY to send as-is
        options: Ingest options

    Returns:
        EncodedBatch whose declared encoding matches the bytes exactly

    Raises:
        EncodingError: If a record holds an unsupported value
    """
    counter = _Counter(records)
    chunks = iter_encoded(counter, content_type, options)

    if content_encoding is ContentEncoding.GZIP:
        # wbits=31 selects the gzip container around a deflate stream
        compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, 31)
        parts = [compressor.compress(chunk) for chunk in chunks]
        parts.append(compressor.flush())
        data = b"".join(parts)
    elif content_encoding is ContentEncoding.ZSTD:
        compressor = zstandard.ZstdCompressor().compressobj()
        parts = [compressor.compress(chunk) for chunk in chunks]
        parts.append(compressor.flush())
        data = b"".join(parts)
    elif content_encoding is ContentEncoding.IDENTITY:
        data = b"".join(chunks)
    else:
        raise EncodingError(f"Invalid content encoding: {content_encoding}")

    return EncodedBatch(data=data, content_type=content_type, content_encoding=content_encoding,
                        count=counter.count)


def decode_batch(batch: EncodedBatch, options: Optional[IngestOptions] = None) -> List[dict]:
    """
    Decode an EncodedBatch back into records, the way the server reads it.

    CSV cells come back as strings since CSV carries no types.
    """
    data = batch.data
    if batch.content_encoding is ContentEncoding.GZIP:
        data = zlib.decompress(data, 47)
    elif batch.content_encoding is ContentEncoding.ZSTD:
        data = zstandard.ZstdDecompressor().decompressobj().decompress(data)
    text = data.decode("utf-8")

    if batch.content_type is ContentType.NDJSON:
        return [json.loads(line) for line in text.split("\n") if line]
    if batch.content_type is ContentType.JSON:
        return json.loads(text)
    delimiter = (options.csv_delimiter if options else None) or ","
    return list(csv.DictReader(io.StringIO(text), delimiter=delimiter))

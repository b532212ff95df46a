"""
Ingest pipeline

encode -> send with retry -> parse. A 2xx response that reports per-record
failures is still a successful call; the failures come back as data in the
IngestStatus. Only encoding, transport and decoding problems raise.
"""

import asyncio
import itertools
import uuid
from datetime import datetime
from typing import Any, AsyncIterable, Iterable, Iterator, List, Optional, Union
from urllib.parse import quote

from opentelemetry import trace
from pydantic import Field, field_validator

from .encoding import ContentEncoding, ContentType, EncodedBatch, IngestOptions, encode_events
from .logging import format_fields, ingest_logger, request_context
from .models import AxiomModel, parse_model
from .telemetry import add_axiom_context, record_ingest_status
from .transport import Transport

DEFAULT_BATCH_SIZE = 1000

# Seconds a partial batch of an async stream may wait before it is sent
DEFAULT_FLUSH_INTERVAL = 1.0


class IngestFailure(AxiomModel):
    """Ingestion failure of a single event."""
    index: Optional[int] = Field(None, description="Position of the event in the submitted batch")
    error: str = Field(..., description="Why the event was rejected")
    timestamp: Optional[datetime] = Field(None, description="Timestamp of the rejected event")


class IngestStatus(AxiomModel):
    """Returned on event ingestion."""
    ingested: int = Field(0, description="Number of events ingested")
    failed: int = Field(0, description="Number of events that failed to ingest")
    failures: List[IngestFailure] = Field(default_factory=list, description="Per-event failures")
    processed_bytes: int = Field(0, alias="processedBytes", description="Bytes processed by the server")
    processing_time_ms: Optional[float] = Field(None, alias="processingTimeMs")

    @field_validator("failures", mode="before")
    @classmethod
    def _null_failures(cls, value):
        return [] if value is None else value

    @property
    def total(self) -> int:
        return self.ingested + self.failed

    def __add__(self, other: "IngestStatus") -> "IngestStatus":
        """
        Combine the statuses of two consecutive batches.

        Failure indexes of `other` are shifted past the events of `self`, so
        they keep pointing at positions in the overall input.
        """
        if not isinstance(other, IngestStatus):
            return NotImplemented
        return self.merge(other, self.total)

    def merge(self, other: "IngestStatus", offset: int) -> "IngestStatus":
        """Combine with the status of a later batch that started at input position `offset`."""
        shifted = [
            failure.model_copy(update={"index": failure.index + offset}) if failure.index is not None else failure
            for failure in other.failures
        ]
        if self.processing_time_ms is None and other.processing_time_ms is None:
            processing_time = None
        else:
            processing_time = (self.processing_time_ms or 0) + (other.processing_time_ms or 0)
        return IngestStatus(
            ingested=self.ingested + other.ingested,
            failed=self.failed + other.failed,
            failures=list(self.failures) + shifted,
            processed_bytes=self.processed_bytes + other.processed_bytes,
            processing_time_ms=processing_time,
        )


def _batches(records: Iterable[Any], size: int) -> Iterator[List[Any]]:
    iterator = iter(records)
    while True:
        batch = list(itertools.islice(iterator, size))
        if not batch:
            return
        yield batch


async def _next(iterator):
    return await iterator.__anext__()


async def _abatches(records: AsyncIterable[Any], size: int, flush_interval: Optional[float]):
    """
    Group an async stream into batches of up to `size` records.

    A partial batch is released once `flush_interval` seconds have passed since
    its first record, so a slow source still gets its events sent. The pending
    read keeps running across a flush; no record is lost to a timeout.
    """
    loop = asyncio.get_running_loop()
    iterator = records.__aiter__()
    batch: List[Any] = []
    deadline = 0.0
    pending: Optional[asyncio.Task] = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(_next(iterator))
            timeout = None
            if batch and flush_interval is not None:
                timeout = max(0.0, deadline - loop.time())
            done, _ = await asyncio.wait({pending}, timeout=timeout)
            if not done:
                yield batch
                batch = []
                continue

            task, pending = pending, None
            try:
                record = task.result()
            except StopAsyncIteration:
                break
            if not batch and flush_interval is not None:
                deadline = loop.time() + flush_interval
            batch.append(record)
            if len(batch) >= size:
                yield batch
                batch = []
    finally:
        if pending is not None:
            pending.cancel()
    if batch:
        yield batch


class IngestPipeline:
    """Ingests records into datasets over one transport."""

    def __init__(self, transport: Transport, uses_edge: bool = False):
        self.transport = transport
        self.uses_edge = uses_edge

    def ingest_path(self, dataset: str) -> str:
        """Edge endpoints use `/v1/ingest/{dataset}`, the API `/v1/datasets/{dataset}/ingest`."""
        if not dataset:
            raise ValueError("dataset name must not be empty")
        name = quote(dataset, safe="")
        if self.uses_edge:
            return f"/v1/ingest/{name}"
        return f"/v1/datasets/{name}/ingest"

    async def ingest(
        self,
        dataset: str,
        records: Iterable[Any],
        options: Optional[IngestOptions] = None,
        content_type: ContentType = ContentType.NDJSON,
        content_encoding: ContentEncoding = ContentEncoding.GZIP
    ) -> IngestStatus:
        """
        Encode and ingest records in a single request.

        Raises:
            EncodingError: Before any request if a record cannot be encoded
            ClientError: On a terminal API response
            TransportError: If transient failures exhaust the retry policy
            DecodingError: If the response is not a valid ingest status
        """
        path = self.ingest_path(dataset)
        batch = encode_events(records, content_type, content_encoding, options)
        return await self._send(dataset, path, batch, options)

    async def ingest_bytes(
        self,
        dataset: str,
        payload: bytes,
        content_type: ContentType = ContentType.NDJSON,
        content_encoding: ContentEncoding = ContentEncoding.IDENTITY,
        options: Optional[IngestOptions] = None
    ) -> IngestStatus:
        """Ingest an already encoded payload; the declared encoding must match the bytes."""
        path = self.ingest_path(dataset)
        batch = EncodedBatch(data=bytes(payload), content_type=content_type,
                             content_encoding=content_encoding, count=-1)
        return await self._send(dataset, path, batch, options)

    async def ingest_stream(
        self,
        dataset: str,
        records: Union[Iterable[Any], AsyncIterable[Any]],
        options: Optional[IngestOptions] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        content_type: ContentType = ContentType.NDJSON,
        content_encoding: ContentEncoding = ContentEncoding.GZIP,
        flush_interval: Optional[float] = DEFAULT_FLUSH_INTERVAL
    ) -> IngestStatus:
        """
        Ingest a lazy (sync or async) stream of records in batches.

        Batches are sent one after another; the per-batch statuses are summed
        and failure indexes point into the whole stream. For async streams a
        partial batch is sent after `flush_interval` seconds (None waits for a
        full batch). An error aborts the stream, leaving earlier batches ingested.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if flush_interval is not None and flush_interval < 0:
            raise ValueError("flush_interval must be >= 0")
        path = self.ingest_path(dataset)
        status = IngestStatus()
        sent = 0

        if hasattr(records, "__aiter__"):
            chunks = _abatches(records, batch_size, flush_interval)
            try:
                async for chunk in chunks:
                    batch = encode_events(chunk, content_type, content_encoding, options)
                    status = status.merge(await self._send(dataset, path, batch, options), sent)
                    sent += batch.count
            finally:
                await chunks.aclose()
        else:
            for chunk in _batches(records, batch_size):
                batch = encode_events(chunk, content_type, content_encoding, options)
                status = status.merge(await self._send(dataset, path, batch, options), sent)
                sent += batch.count

        return status

    async def _send(self, dataset: str, path: str, batch: EncodedBatch,
                    options: Optional[IngestOptions]) -> IngestStatus:
        with request_context(dataset=dataset, request_id=uuid.uuid4().hex):
            return await self._send_batch(dataset, path, batch, options)

    async def _send_batch(self, dataset: str, path: str, batch: EncodedBatch,
                          options: Optional[IngestOptions]) -> IngestStatus:
        params = options.to_params() if options else None
        add_axiom_context(trace.get_current_span(), dataset=dataset, endpoint=path,
                          content_type=batch.content_type.value,
                          content_encoding=batch.content_encoding.value)

        ingest_logger.debug(
            "sending batch | " + format_fields(
                events=batch.count if batch.count >= 0 else None, size=len(batch),
                content_type=batch.content_type.value,
                content_encoding=batch.content_encoding.value or "identity")
        )

        response = await self.transport.request("POST", path, params=params, content=batch.data,
                                                headers=batch.headers())
        status = parse_model(IngestStatus, response.json())

        record_ingest_status(dataset, status.ingested, status.failed)
        if status.failed:
            ingest_logger.warning(
                "partial ingest failure | " + format_fields(
                    ingested=status.ingested, failed=status.failed,
                    first_error=status.failures[0].error if status.failures else None)
            )
        else:
            ingest_logger.info(
                "ingested | " + format_fields(ingested=status.ingested, bytes=status.processed_bytes,
                                              attempts=response.attempts)
            )
        return status

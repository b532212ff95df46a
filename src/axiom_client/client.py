"""
Axiom client facade

Resolves configuration, owns the shared HTTP connection pool and exposes
ingest, query and dataset operations as traced coroutines.
"""

import asyncio
import uuid
from typing import Any, AsyncIterable, Awaitable, Callable, Iterable, Optional, Union

import httpx
from opentelemetry import trace

from . import __version__
from .config import ClientConfig, resolve_config
from .datasets import DatasetsClient
from .encoding import ContentEncoding, ContentType, IngestOptions
from .ingest import DEFAULT_BATCH_SIZE, DEFAULT_FLUSH_INTERVAL, IngestPipeline, IngestStatus
from .logging import format_fields, get_logger, query_logger, request_context
from .query import APL_PATH, HISTORY_QUERY_ID_HEADER, QueryOptions, build_query_request
from .results import QueryResult, decode_query_result
from .retry import RetryPolicy
from .telemetry import get_tracer, trace_api_call
from .transport import TRACE_ID_HEADER, Transport

logger = get_logger('CLIENT')

USER_AGENT = f"axiom-client-python/{__version__}"


class Client:
    """
    Async client for the Axiom API.

    Settings are resolved from explicit arguments first, then the environment
    (AXIOM_TOKEN, AXIOM_ORG_ID, AXIOM_URL, AXIOM_INGEST_URL, AXIOM_REGION), then
    the Axiom Cloud defaults. Ingest and query requests go to the ingest (edge)
    URL; dataset management goes to the API URL. Both share one connection pool.

    Example:
        async with Client() as client:
            status = await client.ingest("logs", [{"message": "hello"}])
            result = await client.query("['logs'] | count")
    """

    def __init__(
        self,
        token: Optional[str] = None,
        org_id: Optional[str] = None,
        url: Optional[str] = None,
        ingest_url: Optional[str] = None,
        region: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 10.0,
        verify: bool = True,
        use_env: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        tracer: Optional[trace.Tracer] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Args:
            token: API token or personal access token
            org_id: Organization id (required for personal tokens on Axiom Cloud)
            url: API base URL
            ingest_url: Ingest/query base URL, e.g. a regional edge
            region: Edge region host, e.g. "eu-central-1.aws.edge.axiom.co"
            retry_policy: Backoff configuration for transient failures
            timeout: Per-attempt HTTP timeout in seconds
            verify: Verify TLS certificates
            use_env: Fall back to environment variables (and a .env file)
            transport: Custom httpx transport, e.g. httpx.MockTransport in tests
            tracer: OpenTelemetry tracer (defaults to the global provider's)
            sleep: Coroutine used for backoff waits

        Raises:
            ConfigurationError: If no usable configuration can be resolved
        """
        self.config: ClientConfig = resolve_config(
            token=token, org_id=org_id, url=url, ingest_url=ingest_url,
            region=region, verify=verify, use_env=use_env
        )
        self.retry_policy = retry_policy or RetryPolicy()
        self._tracer = tracer or get_tracer()

        headers = {**self.config.headers(), "User-Agent": USER_AGENT}
        self._http = httpx.AsyncClient(headers=headers, timeout=timeout, verify=verify, transport=transport)

        self._api = Transport(self.config.api_url, self._http, self.retry_policy, self._tracer, sleep=sleep)
        self._edge = Transport(self.config.ingest_url, self._http, self.retry_policy, self._tracer, sleep=sleep)

        self._ingest = IngestPipeline(self._edge, uses_edge=self.config.uses_edge)
        self.datasets = DatasetsClient(self._api)

        logger.debug(
            "client configured | " + format_fields(api_url=self.config.api_url, ingest_url=self.config.ingest_url,
                                                   edge=self.config.uses_edge, org_id=self.config.org_id)
        )

    @classmethod
    def from_env(cls, **kwargs) -> "Client":
        """Build a client purely from environment variables (and a .env file)."""
        return cls(use_env=True, **kwargs)

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        """Close the connection pool."""
        await self._http.aclose()

    @trace_api_call("ingest")
    async def ingest(
        self,
        dataset: str,
        records: Iterable[Any],
        options: Optional[IngestOptions] = None,
        content_type: ContentType = ContentType.NDJSON,
        content_encoding: ContentEncoding = ContentEncoding.GZIP
    ) -> IngestStatus:
        """
        Encode and ingest records into a dataset.

        Args:
            dataset: Target dataset name
            records: Finite iterable of mappings
            options: Timestamp field/format and CSV delimiter
            content_type: Wire serialization (NDJSON by default)
            content_encoding: GZIP (default) or IDENTITY

        Returns:
            IngestStatus; per-record rejections are reported in `failures`

        Raises:
            EncodingError: A record holds an unsupported value (nothing is sent)
            ClientError: Terminal API error
            TransportError: Transient failures exhausted the retry policy
        """
        return await self._ingest.ingest(dataset, records, options, content_type, content_encoding)

    @trace_api_call("ingest_bytes")
    async def ingest_bytes(
        self,
        dataset: str,
        payload: bytes,
        content_type: ContentType = ContentType.NDJSON,
        content_encoding: ContentEncoding = ContentEncoding.IDENTITY,
        options: Optional[IngestOptions] = None
    ) -> IngestStatus:
        """Ingest a payload that is already encoded (and possibly compressed)."""
        return await self._ingest.ingest_bytes(dataset, payload, content_type, content_encoding, options)

    @trace_api_call("ingest_stream")
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
        Ingest a lazy stream of records in batches of `batch_size`, summing the statuses.

        Async streams also send a partial batch once it is `flush_interval` seconds old.
        """
        return await self._ingest.ingest_stream(dataset, records, options, batch_size,
                                                content_type, content_encoding, flush_interval)

    @trace_api_call("query")
    async def query(self, apl: str, options: Optional[QueryOptions] = None) -> QueryResult:
        """
        Execute an APL query.

        Args:
            apl: APL query text
            options: Time range, cursor, cache/save flags and result format

        Returns:
            QueryResult with typed rows, the saved query id and the trace id

        Raises:
            ClientError: The query was rejected (e.g. syntax error)
            TransportError: Transient failures exhausted the retry policy
            DecodingError: The response could not be decoded
        """
        params, body = build_query_request(apl, options)
        with request_context(request_id=uuid.uuid4().hex):
            return await self._run_query(params, body)

    async def _run_query(self, params: dict, body: dict) -> QueryResult:
        response = await self._edge.request("POST", APL_PATH, params=params, json_data=body)
        result = decode_query_result(
            response.content,
            saved_query_id=response.header(HISTORY_QUERY_ID_HEADER),
            trace_id=response.header(TRACE_ID_HEADER),
        )

        query_logger.info(
            "query finished | " + format_fields(format=params["format"], rows=len(result.rows),
                                                matched=result.status.rows_matched,
                                                elapsed=f"{result.status.elapsed_time}us",
                                                attempts=response.attempts, trace_id=result.trace_id)
        )
        return result

"""Tests for the ingest pipeline."""

import asyncio
from datetime import datetime, timezone

import pytest

from axiom_client import DecodingError, IngestFailure, IngestOptions, IngestStatus
from axiom_client.encoding import ContentEncoding, ContentType, encode_events
from axiom_client.logging import get_request_context

from helpers import decode_request, ingest_ok, json_response


class TestIngest:

    async def test_single_record_status(self, make_client):
        client, recorder = make_client(
            lambda request: json_response(200, {"ingested": 1, "failed": 0, "failures": []})
        )

        status = await client.ingest("foo", [{"foo": "bar"}])

        assert status == IngestStatus(ingested=1, failed=0, failures=[])
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/datasets/foo/ingest"
        assert request.headers["Authorization"] == "Bearer xaat-test-token"
        assert request.headers["Content-Type"] == "application/x-ndjson"
        assert request.headers["Content-Encoding"] == "gzip"
        assert request.headers["User-Agent"].startswith("axiom-client-python/")
        assert decode_request(request) == [{"foo": "bar"}]

    async def test_partial_failure_is_data_not_an_error(self, make_client):
        body = {
            "ingested": 1,
            "failed": 1,
            "failures": [{"index": 1, "timestamp": "2024-01-01T00:00:00Z", "error": "invalid field"}],
            "processedBytes": 120,
            "processingTimeMs": 3.5,
        }
        client, _ = make_client(lambda request: json_response(200, body))

        status = await client.ingest("logs", [{"a": 1}, {"a": 2}])

        assert status.ingested == 1
        assert status.failed == 1
        assert status.processed_bytes == 120
        assert status.processing_time_ms == 3.5
        failure = status.failures[0]
        assert failure.index == 1
        assert failure.error == "invalid field"
        assert failure.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)

    async def test_null_failures_and_unknown_fields(self, make_client):
        body = {"ingested": 2, "failed": 0, "failures": None, "walLength": 7, "blocksCreated": 0}
        client, _ = make_client(lambda request: json_response(200, body))

        status = await client.ingest("logs", [{"a": 1}, {"a": 2}])

        assert status.failures == []
        assert status.ingested == 2

    async def test_options_become_query_params(self, make_client):
        client, recorder = make_client(ingest_ok)
        options = IngestOptions(timestamp_field="ts", timestamp_format="2006-01-02T15:04:05Z07:00")

        await client.ingest("logs", [{"ts": "2024-01-01T00:00:00Z"}], options)

        params = recorder.requests[0].url.params
        assert params["timestamp-field"] == "ts"
        assert params["timestamp-format"] == "2006-01-02T15:04:05Z07:00"

    async def test_csv_without_compression(self, make_client):
        client, recorder = make_client(ingest_ok)

        await client.ingest("logs", [{"a": 1}], content_type=ContentType.CSV,
                            content_encoding=ContentEncoding.IDENTITY)

        request = recorder.requests[0]
        assert request.headers["Content-Type"] == "text/csv"
        assert "Content-Encoding" not in request.headers
        assert request.content == b"a\n1\n"

    async def test_edge_endpoint_path(self, make_client):
        client, recorder = make_client(ingest_ok, ingest_url="https://eu-central-1.aws.edge.axiom.test")

        await client.ingest("my logs", [{"a": 1}])

        url = recorder.requests[0].url
        assert url.host == "eu-central-1.aws.edge.axiom.test"
        assert url.raw_path.startswith(b"/v1/ingest/my%20logs")

    async def test_malformed_response_raises_decoding_error(self, make_client):
        client, _ = make_client(lambda request: json_response(200, {"ingested": "many"}))

        with pytest.raises(DecodingError) as exc_info:
            await client.ingest("logs", [{"a": 1}])

        assert exc_info.value.path == "ingested"

    async def test_request_context_is_reset_after_the_call(self, make_client):
        client, _ = make_client(ingest_ok)

        await client.ingest("logs", [{"a": 1}])

        assert get_request_context() == (None, None)

    async def test_empty_dataset_name(self, make_client):
        client, recorder = make_client(ingest_ok)

        with pytest.raises(ValueError):
            await client.ingest("", [{"a": 1}])
        assert recorder.requests == []


class TestIngestBytes:

    async def test_payload_is_sent_unchanged(self, make_client):
        client, recorder = make_client(ingest_ok)
        batch = encode_events([{"a": 1}, {"b": 2}], ContentType.JSON, ContentEncoding.GZIP)

        status = await client.ingest_bytes("logs", batch.data, ContentType.JSON, ContentEncoding.GZIP)

        assert status.ingested == 2
        assert recorder.requests[0].content == batch.data
        assert recorder.requests[0].headers["Content-Encoding"] == "gzip"


class TestIngestStream:

    async def test_sync_iterable_is_batched(self, make_client):
        client, recorder = make_client(ingest_ok)

        status = await client.ingest_stream("logs", ({"i": i} for i in range(25)), batch_size=10)

        assert [len(decode_request(r)) for r in recorder.requests] == [10, 10, 5]
        assert status.ingested == 25

    async def test_async_iterable_is_batched(self, make_client):
        client, recorder = make_client(ingest_ok)

        async def records():
            for i in range(7):
                yield {"i": i}

        status = await client.ingest_stream("logs", records(), batch_size=3)

        assert [len(decode_request(r)) for r in recorder.requests] == [3, 3, 1]
        assert status.ingested == 7

    async def test_failure_indexes_refer_to_the_whole_stream(self, make_client):
        def handler(request):
            records = decode_request(request)
            return json_response(200, {
                "ingested": len(records) - 1,
                "failed": 1,
                "failures": [{"index": 0, "error": "bad"}],
            })

        client, _ = make_client(handler)

        status = await client.ingest_stream("logs", [{"i": i} for i in range(6)], batch_size=3)

        assert status.ingested == 4
        assert status.failed == 2
        assert [failure.index for failure in status.failures] == [0, 3]

    async def test_failure_indexes_follow_records_sent(self, make_client):
        def handler(request):
            # The server accounts for fewer events than the batch carried
            return json_response(200, {"ingested": 0, "failed": 1, "failures": [{"index": 2, "error": "bad"}]})

        client, _ = make_client(handler)

        status = await client.ingest_stream("logs", [{"i": i} for i in range(6)], batch_size=3)

        assert [failure.index for failure in status.failures] == [2, 5]

    async def test_partial_batch_is_flushed_while_the_source_is_idle(self, make_client):
        client, recorder = make_client(ingest_ok)
        release = asyncio.Event()

        async def records():
            yield {"i": 0}
            await release.wait()
            yield {"i": 1}

        task = asyncio.ensure_future(
            client.ingest_stream("logs", records(), batch_size=100, flush_interval=0.05)
        )
        for _ in range(200):
            if recorder.requests:
                break
            await asyncio.sleep(0.01)

        assert [decode_request(r) for r in recorder.requests] == [[{"i": 0}]]
        release.set()
        status = await task

        assert [decode_request(r) for r in recorder.requests] == [[{"i": 0}], [{"i": 1}]]
        assert status.ingested == 2

    async def test_no_flush_interval_waits_for_a_full_batch(self, make_client):
        client, recorder = make_client(ingest_ok)

        async def records():
            for i in range(4):
                await asyncio.sleep(0.01)
                yield {"i": i}

        status = await client.ingest_stream("logs", records(), batch_size=2, flush_interval=None)

        assert [len(decode_request(r)) for r in recorder.requests] == [2, 2]
        assert status.ingested == 4

    async def test_empty_stream_sends_nothing(self, make_client):
        client, recorder = make_client(ingest_ok)

        status = await client.ingest_stream("logs", [])

        assert status == IngestStatus()
        assert recorder.requests == []

    async def test_invalid_batch_size(self, make_client):
        client, _ = make_client(ingest_ok)
        with pytest.raises(ValueError):
            await client.ingest_stream("logs", [{"a": 1}], batch_size=0)

    async def test_invalid_flush_interval(self, make_client):
        client, _ = make_client(ingest_ok)
        with pytest.raises(ValueError):
            await client.ingest_stream("logs", [{"a": 1}], flush_interval=-1)


class TestIngestStatus:

    def test_sum(self):
        first = IngestStatus(ingested=2, failed=1, failures=[IngestFailure(index=2, error="x")],
                             processed_bytes=10)
        second = IngestStatus(ingested=1, failed=1, failures=[IngestFailure(index=0, error="y")],
                              processed_bytes=5, processing_time_ms=2.0)

        total = first + second

        assert total.ingested == 3
        assert total.failed == 2
        assert total.processed_bytes == 15
        assert total.processing_time_ms == 2.0
        assert [f.index for f in total.failures] == [2, 3]
        assert [f.error for f in total.failures] == ["x", "y"]

    def test_parse_by_alias(self):
        status = IngestStatus.model_validate({"ingested": 1, "processedBytes": 9, "processingTimeMs": 1})
        assert status.processed_bytes == 9
        assert status.processing_time_ms == 1.0

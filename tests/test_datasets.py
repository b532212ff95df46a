"""Tests for the dataset passthroughs."""

import json
from datetime import timedelta

import pytest

from axiom_client import DecodingError

from helpers import json_response

DATASET = {
    "name": "logs",
    "description": "application logs",
    "who": "user-1",
    "created": "2024-01-01T00:00:00Z",
    "integrationConfigs": None,
}


def routes(table):
    """Build a handler answering from {(method, path): (status, body)}."""
    def handler(request):
        status, body = table[(request.method, request.url.path)]
        return json_response(status, body)
    return handler


class TestDatasets:

    async def test_list(self, make_client):
        client, recorder = make_client(routes({("GET", "/v1/datasets"): (200, [DATASET])}))

        datasets = await client.datasets.list()

        assert [d.name for d in datasets] == ["logs"]
        assert datasets[0].created_by == "user-1"
        assert recorder.requests[0].url.host == "api.axiom.test"

    async def test_get(self, make_client):
        client, _ = make_client(routes({("GET", "/v1/datasets/logs"): (200, DATASET)}))

        dataset = await client.datasets.get("logs")

        assert dataset.description == "application logs"
        assert dataset.created_at.year == 2024

    async def test_create(self, make_client):
        client, recorder = make_client(routes({("POST", "/v1/datasets"): (200, DATASET)}))

        await client.datasets.create("logs", "application logs")

        assert json.loads(recorder.requests[0].content) == {"name": "logs", "description": "application logs"}

    async def test_update(self, make_client):
        client, recorder = make_client(routes({("PUT", "/v1/datasets/logs"): (200, DATASET)}))

        await client.datasets.update("logs", "new description")

        assert json.loads(recorder.requests[0].content) == {"description": "new description"}

    async def test_delete(self, make_client):
        client, recorder = make_client(routes({("DELETE", "/v1/datasets/logs"): (204, None)}))

        assert await client.datasets.delete("logs") is None
        assert recorder.requests[0].method == "DELETE"

    async def test_trim(self, make_client):
        client, recorder = make_client(routes({("POST", "/v1/datasets/logs/trim"): (200, {"numDeleted": 3})}))

        result = await client.datasets.trim("logs", timedelta(hours=1))

        assert result.blocks_deleted == 3
        assert json.loads(recorder.requests[0].content) == {"maxDuration": "3600s"}

    async def test_info(self, make_client):
        info_body = {
            "name": "logs",
            "numEvents": 10,
            "numFields": 2,
            "inputBytes": 100,
            "compressedBytes": 20,
            "minTime": None,
            "maxTime": "2024-01-02T00:00:00Z",
            "created": "2024-01-01T00:00:00Z",
            "fields": [{"name": "msg", "type": "string", "unit": "", "hidden": False, "description": ""}],
        }
        client, _ = make_client(routes({("GET", "/v1/datasets/logs/info"): (200, info_body)}))

        info = await client.datasets.info("logs")

        assert info.num_events == 10
        assert info.min_time is None
        assert info.fields[0].name == "msg"

    async def test_invalid_body(self, make_client):
        client, _ = make_client(routes({("GET", "/v1/datasets"): (200, {"not": "a list"})}))

        with pytest.raises(DecodingError):
            await client.datasets.list()

    async def test_operation_spans(self, make_client, span_exporter):
        client, _ = make_client(routes({("GET", "/v1/datasets/logs"): (200, DATASET)}))

        await client.datasets.get(dataset_name="logs")

        call = next(s for s in span_exporter.get_finished_spans() if s.name == "axiom_api.datasets.get")
        assert call.attributes["axiom.dataset"] == "logs"

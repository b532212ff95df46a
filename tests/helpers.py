"""Response builders shared by the test modules."""

import json

import httpx

from axiom_client.encoding import ContentEncoding, ContentType, EncodedBatch, decode_batch


def json_response(status_code: int, body, headers=None) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(body).encode(), headers={
        "Content-Type": "application/json", **(headers or {})
    })


def decode_request(request: httpx.Request) -> list:
    """Decode the records carried by an ingest request."""
    batch = EncodedBatch(
        data=request.content,
        content_type=ContentType.parse(request.headers["Content-Type"]),
        content_encoding=ContentEncoding.parse(request.headers.get("Content-Encoding", "")),
        count=-1,
    )
    return decode_batch(batch)


def ingest_ok(request: httpx.Request) -> httpx.Response:
    """Answer an ingest request by counting the records it carried."""
    records = decode_request(request)
    return json_response(200, {"ingested": len(records), "failed": 0, "failures": [],
                               "processedBytes": len(request.content)})

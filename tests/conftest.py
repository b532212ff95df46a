"""
Shared fixtures for the Axiom client tests.

Provides:
- An isolated environment (no AXIOM_* variables leak in)
- An in-memory OpenTelemetry tracer for span assertions
- A fake sleep that records backoff waits instead of waiting
- A client factory wired to httpx.MockTransport
"""

from typing import Callable, List

import httpx
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from axiom_client import Client, RetryPolicy

API_URL = "https://api.axiom.test"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    for name in ("AXIOM_TOKEN", "AXIOM_ORG_ID", "AXIOM_URL", "AXIOM_INGEST_URL", "AXIOM_REGION"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("axiom_client.tests")


class FakeSleep:
    """Records requested backoff delays and returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


class Recorder:
    """Wraps a handler and keeps every request it saw."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def make_client(tracer, fake_sleep):
    """
    Factory building a Client against a mocked API.

    Returns (client, recorder); the recorder exposes the captured requests.
    """
    def factory(handler, **kwargs):
        recorder = Recorder(handler)
        options = dict(
            token="xaat-test-token",
            url=API_URL,
            ingest_url=API_URL,
            use_env=False,
            transport=httpx.MockTransport(recorder),
            tracer=tracer,
            sleep=fake_sleep,
            retry_policy=RetryPolicy(initial_interval=0.1, max_interval=1.0, max_elapsed_time=30.0,
                                     max_attempts=5),
        )
        options.update(kwargs)
        return Client(**options), recorder

    return factory

"""Tests for the tracing helpers and log formatting."""

import logging

from axiom_client.logging import (
    format_fields,
    get_logger,
    get_request_context,
    request_context,
    reset_request_context,
    sanitize_headers,
    set_request_context,
    setup_logging,
)
from axiom_client.logging.client_logger import RequestColoredFormatter, RequestHandler
from axiom_client.telemetry import (
    add_span_attributes,
    correlate_with_logging,
    get_telemetry_status,
    initialize_telemetry,
    is_telemetry_enabled,
    shutdown_telemetry,
)


class TestTelemetryConfig:

    def test_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("OTEL_TELEMETRY_ENABLED", raising=False)

        assert initialize_telemetry() is False
        status = get_telemetry_status()
        assert status["enabled"] is False
        assert status["service_name"]

    def test_enabled_flag_values(self, monkeypatch):
        monkeypatch.setenv("OTEL_TELEMETRY_ENABLED", "yes")
        assert is_telemetry_enabled() is True
        monkeypatch.setenv("OTEL_TELEMETRY_ENABLED", "off")
        assert is_telemetry_enabled() is False

    def test_shutdown_without_initialize_is_noop(self):
        shutdown_telemetry()


class TestSpanHelpers:

    def test_attributes_skip_none_and_stringify(self, tracer, span_exporter):
        with tracer.start_as_current_span("test") as span:
            add_span_attributes(span, {"a": 1, "b": None, "c": ["x"]})

        attributes = span_exporter.get_finished_spans()[0].attributes
        assert attributes["a"] == 1
        assert "b" not in attributes
        assert attributes["c"] == "['x']"

    def test_log_correlation_inside_span(self, tracer):
        with tracer.start_as_current_span("test") as span:
            fields = correlate_with_logging({"path": "/v1/datasets"})

        assert fields["path"] == "/v1/datasets"
        assert fields["trace_id"] == format(span.get_span_context().trace_id, "032x")

    def test_log_correlation_without_span(self):
        assert correlate_with_logging({"a": 1}) == {"a": 1}


class TestLogFormatting:

    def test_format_fields(self):
        assert format_fields(method="POST", status=None, attempts=2) == "method:POST | attempts:2"

    def test_sanitize_headers(self):
        headers = sanitize_headers({"Authorization": "Bearer secret", "Content-Type": "text/csv"})
        assert headers == {"Authorization": "[REDACTED]", "Content-Type": "text/csv"}

    def test_request_context_is_rendered(self):
        logger = get_logger("TEST")
        formatter = RequestColoredFormatter(use_colors=False)
        records = []

        class Capture(logging.Handler):
            def emit(self, record):
                records.append(formatter.format(record))

        handler = Capture()
        logger.addHandler(handler)
        token = set_request_context(dataset="logs", request_id="0123456789abcdef")
        try:
            logger.warning("hello")
        finally:
            logger.removeHandler(handler)
            reset_request_context(token)

        assert "axiom_client.TEST dataset:logs req:01234567" in records[0]
        assert records[0].endswith("hello")

    def test_request_context_scope_restores_previous(self):
        with request_context(dataset="outer"):
            with request_context(dataset="inner", request_id="abc"):
                assert get_request_context() == ("inner", "abc")
            assert get_request_context() == ("outer", None)
        assert get_request_context() == (None, None)


class TestLogRouting:

    def test_records_reach_host_handlers(self, caplog):
        logger = get_logger("ROUTING")

        with caplog.at_level(logging.INFO, logger="axiom_client"):
            logger.info("routed")

        assert logger.propagate is True
        assert not any(isinstance(h, RequestHandler) for h in logger.handlers)
        assert [r.getMessage() for r in caplog.records] == ["routed"]

    def test_setup_logging_installs_one_stderr_handler(self):
        package = logging.getLogger("axiom_client")
        saved = (list(package.handlers), package.level, package.propagate)
        try:
            setup_logging(level=logging.DEBUG, colors=False)
            setup_logging(level=logging.DEBUG, colors=False)

            handlers = [h for h in package.handlers if isinstance(h, RequestHandler)]
            assert len(handlers) == 1
            assert package.level == logging.DEBUG
            assert package.propagate is False
        finally:
            package.handlers[:] = saved[0]
            package.setLevel(saved[1])
            package.propagate = saved[2]

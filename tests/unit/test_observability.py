"""Unit tests for logging and tracing helpers."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from structlog.testing import capture_logs

from gridql.domain.errors import UnknownTable
from gridql.infrastructure.logging import MAX_USER_TEXT, get_logger, truncate_user_text
from gridql.infrastructure.tracing import MAX_ATTRIBUTE_LENGTH, mark_error, span_value


@pytest.mark.unit
class TestLogging:
    """Tests for structlog helpers."""

    def test_long_query_is_truncated(self) -> None:
        query = "SELECT " + "x, " * 200 + "y FROM t"

        event = truncate_user_text(None, "info", {"event": "query_failed", "query": query})

        assert len(event["query"]) < len(query)
        assert event["query"].startswith(query[:MAX_USER_TEXT])
        assert event["query"].endswith(f"({len(query)} chars)")

    def test_short_and_other_fields_untouched(self) -> None:
        event = {"event": "e", "query": "SELECT 1", "rows": "r" * 1000}

        assert truncate_user_text(None, "info", dict(event)) == event

    def test_get_logger_binds_context(self) -> None:
        with capture_logs() as logs:
            get_logger("gridql.test", request_id="r1").info("query_executed", rows=2)

        assert logs == [
            {"event": "query_executed", "request_id": "r1", "rows": 2, "log_level": "info"}
        ]


@pytest.mark.unit
class TestTracing:
    """Tests for span helpers."""

    def test_span_value(self) -> None:
        assert span_value(3) == 3
        assert span_value(True) is True
        assert span_value(None) == "None"
        assert len(span_value("q" * 2000)) == MAX_ATTRIBUTE_LENGTH + 3

    def test_mark_error(self) -> None:
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        tracer = provider.get_tracer("test")

        with tracer.start_as_current_span("gridql.run_query") as span:
            mark_error(span, UnknownTable("invoices", ["orders"]))

        (finished,) = exporter.get_finished_spans()
        assert finished.attributes["error.kind"] == "unknown_table"
        assert finished.status.status_code is StatusCode.ERROR

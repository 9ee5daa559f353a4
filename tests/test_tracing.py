"""
Tracing Module Tests
====================
Tests for per-operation spans and their result attributes.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import pytest
from unittest.mock import patch, MagicMock

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from refsync import tracing
from refsync.config import TracingConfig
from refsync.errors import InvalidPositionError, NotFoundError


@pytest.fixture
def span_exporter():
    """Route operation spans to an in-memory exporter."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    with patch.object(tracing, "_tracer", provider.get_tracer("refsync-tests")):
        yield exporter


def _only_span(exporter):
    spans = exporter.get_finished_spans()
    assert len(spans) == 1
    return spans[0]


class TestOperationSpan:
    @pytest.mark.unit
    def test_span_named_after_operation_and_tagged_with_document(self, span_exporter):
        with tracing.operation_span("reorder", "doc-1"):
            pass

        span = _only_span(span_exporter)
        assert span.name == "refsync.reorder"
        assert span.attributes["refsync.operation"] == "reorder"
        assert span.attributes["refsync.document_id"] == "doc-1"

    @pytest.mark.unit
    def test_result_attributes_land_on_operation_span(self, span_exporter):
        with tracing.operation_span("delete_reference", "doc-1"):
            tracing.safe_set_current_span_attributes(
                {
                    "refsync.citations_rewritten": 2,
                    "refsync.citations_orphaned": 1,
                    "refsync.reorder.kind": None,
                    "refsync.mapping": {1: 2},
                }
            )

        attrs = _only_span(span_exporter).attributes
        assert attrs["refsync.citations_rewritten"] == 2
        assert attrs["refsync.citations_orphaned"] == 1
        assert "refsync.reorder.kind" not in attrs
        assert attrs["refsync.mapping"] == "{1: 2}"

    @pytest.mark.unit
    def test_attributes_outside_operation_span_are_ignored(self, span_exporter):
        tracing.safe_set_current_span_attributes({"refsync.links_created": 6})
        assert span_exporter.get_finished_spans() == ()

    @pytest.mark.unit
    def test_engine_error_tags_span_and_propagates(self, span_exporter):
        with pytest.raises(InvalidPositionError):
            with tracing.operation_span("reorder", "doc-1"):
                raise InvalidPositionError("Position 9 is outside 1..3")

        span = _only_span(span_exporter)
        assert span.attributes["refsync.error_code"] == "INVALID_POSITION"
        assert span.status.status_code == StatusCode.ERROR


class TestServiceSpans:
    @pytest.mark.unit
    def test_reorder_records_counts(self, service, span_exporter):
        service.reorder("doc-1", "tenant-a", {"sortBy": "year", "order": "desc"})

        span = _only_span(span_exporter)
        assert span.name == "refsync.reorder"
        assert span.attributes["refsync.reorder.kind"] == "year"
        assert span.attributes["refsync.references_renumbered"] == 3
        assert span.attributes["refsync.citations_rewritten"] == 4

    @pytest.mark.unit
    def test_delete_of_missing_reference_records_error_code(self, service, span_exporter):
        with pytest.raises(NotFoundError):
            service.delete_reference("doc-1", "tenant-a", "missing")

        span = _only_span(span_exporter)
        assert span.name == "refsync.delete_reference"
        assert span.attributes["refsync.error_code"] == "NOT_FOUND"


class TestTracerSetup:
    @pytest.mark.unit
    @patch('refsync.tracing.atexit')
    @patch('refsync.tracing.BatchSpanProcessor')
    @patch('refsync.tracing.OTLPSpanExporter')
    @patch('refsync.tracing.TracerProvider')
    @patch('refsync.tracing.trace')
    def test_enabled_tracing_exports_to_configured_endpoint(
        self, mock_trace, mock_provider, mock_exporter, mock_processor, mock_atexit
    ):
        config = TracingConfig(ENABLED=True, OTLP_ENDPOINT="http://collector:4318/v1/traces")
        with patch.object(tracing, "TRACING", config), patch.object(tracing, "_tracer", None):
            tracing._engine_tracer()

        mock_exporter.assert_called_once_with(endpoint="http://collector:4318/v1/traces")
        mock_trace.set_tracer_provider.assert_called_once_with(mock_provider.return_value)
        mock_atexit.register.assert_called_once_with(mock_provider.return_value.shutdown)
        mock_trace.get_tracer.assert_called_once_with("refsync-reference-engine")

    @pytest.mark.unit
    @patch('refsync.tracing.TracerProvider')
    @patch('refsync.tracing.trace')
    def test_disabled_tracing_uses_global_tracer_once(self, mock_trace, mock_provider):
        mock_trace.get_tracer.return_value = MagicMock()
        config = TracingConfig(ENABLED=False)
        with patch.object(tracing, "TRACING", config), patch.object(tracing, "_tracer", None):
            first = tracing._engine_tracer()
            second = tracing._engine_tracer()

        assert first is second
        mock_provider.assert_not_called()
        mock_trace.get_tracer.assert_called_once_with("refsync-reference-engine")

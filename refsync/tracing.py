"""
Operation Tracing
=================
One OpenTelemetry span per engine operation ("refsync.reorder",
"refsync.delete_reference", ...), tagged with the document it runs on and,
once the operation has committed, with its result counts.

Spans are exported over OTLP/HTTP when ENABLE_TRACING=true. Otherwise the
global no-op tracer is used and tagging a span does nothing.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import atexit
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from refsync.config import TRACING
from refsync.errors import ReferenceEngineError

SPAN_PREFIX = "refsync"

_tracer: Optional[trace.Tracer] = None


def _engine_tracer() -> trace.Tracer:
    """Tracer for operation spans; installs the OTLP exporter on first use when enabled."""
    global _tracer
    if _tracer is None:
        if TRACING.ENABLED:
            provider = TracerProvider(resource=Resource.create({SERVICE_NAME: TRACING.SERVICE_NAME}))
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=TRACING.OTLP_ENDPOINT)))
            trace.set_tracer_provider(provider)
            # Flush pending spans on exit
            atexit.register(provider.shutdown)
        _tracer = trace.get_tracer(TRACING.SERVICE_NAME)
    return _tracer


def _attribute_value(value: Any) -> Any:
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


def safe_set_current_span_attributes(attributes: Mapping[str, Any]) -> None:
    """Tag the active operation span with result attributes.

    None values are skipped and non-scalar values are recorded as strings.
    Outside an operation span the current span is non-recording and this is
    a no-op.
    """
    span = trace.get_current_span()
    if not span.is_recording():
        return
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, _attribute_value(value))


@contextmanager
def operation_span(operation: str, document_id: str) -> Iterator[Any]:
    """Open the span for one engine operation on one document.

    Engine errors leaving the block tag the span with their error code
    before propagating.
    """
    tracer = _engine_tracer()
    with tracer.start_as_current_span(f"{SPAN_PREFIX}.{operation}") as span:
        span.set_attribute(f"{SPAN_PREFIX}.operation", operation)
        span.set_attribute(f"{SPAN_PREFIX}.document_id", document_id)
        try:
            yield span
        except ReferenceEngineError as e:
            span.set_attribute(f"{SPAN_PREFIX}.error_code", e.code)
            raise

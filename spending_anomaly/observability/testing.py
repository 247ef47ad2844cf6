"""
Helpers for asserting on the engine's spans and metrics in tests.
"""

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from prometheus_client import REGISTRY


def setup_test_tracing(service_name: str = "spending-anomaly-test") -> InMemorySpanExporter:
    """
    Install a provider that keeps finished spans in memory and return its exporter.

    Replaces whatever provider an earlier test installed.
    """
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    exporter = InMemorySpanExporter()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    # set_tracer_provider only works once per process
    trace._TRACER_PROVIDER = None
    trace._TRACER_PROVIDER_SET_ONCE._done = False
    trace.set_tracer_provider(provider)
    return exporter


def get_spans_by_name(exporter: InMemorySpanExporter, name: str) -> list[ReadableSpan]:
    return [s for s in exporter.get_finished_spans() if s.name == name]


def sample_value(name: str, labels: dict[str, str] | None = None) -> float:
    """Current value of a sample in the default registry; 0 if never recorded."""
    value = REGISTRY.get_sample_value(name, labels or {})
    return 0.0 if value is None else value

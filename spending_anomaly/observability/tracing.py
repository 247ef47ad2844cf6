"""OTLP/HTTP export of the spans opened around training, detection and baseline checks."""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:4318"
TRACES_PATH = "/v1/traces"


def traces_url(endpoint: str) -> str:
    """Append the OTLP traces path unless ``endpoint`` already ends with it."""
    endpoint = endpoint.rstrip("/")
    if endpoint.endswith(TRACES_PATH):
        return endpoint
    return endpoint + TRACES_PATH


def init_tracing(
    service_name: str,
    endpoint: str | None = None,
    version: str | None = None,
) -> TracerProvider:
    """
    Install a global tracer provider that batches spans to an OTLP collector.

    Args:
        service_name: ``service.name`` resource attribute.
        endpoint: Collector base URL; ``$OTEL_EXPORTER_OTLP_ENDPOINT`` or
            ``http://localhost:4318`` when omitted.
        version: Optional ``service.version`` resource attribute.
    """
    url = traces_url(
        endpoint or os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_ENDPOINT)
    )
    attributes = {"service.name": service_name}
    if version:
        attributes["service.version"] = version

    provider = TracerProvider(resource=Resource.create(attributes))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=url)))
    trace.set_tracer_provider(provider)

    logger.info("Exporting %s spans to %s", service_name, url)
    return provider


def shutdown_tracing() -> None:
    """Flush pending spans; a no-op when no SDK provider is installed."""
    provider = trace.get_tracer_provider()
    shutdown = getattr(provider, "shutdown", None)
    if shutdown is None:
        return
    try:
        shutdown()
    except Exception as exc:
        logger.warning("Tracer shutdown failed: %s", exc)

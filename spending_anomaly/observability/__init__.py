"""
spending_anomaly.observability: logs, metrics and traces for a host process.

The engine itself only opens spans, updates the collectors declared in
:mod:`spending_anomaly.telemetry` and logs through named loggers.  A host
process calls :func:`init_observability` once (``create_engine`` does it) to
decide where that output goes.

Submodules
----------
logging      JSON log lines with trace/span ids.
metrics      Idempotent Prometheus collector factories.
tracing      OTLP/HTTP span export.
testing      In-memory span exporter and metric lookups for tests.
"""

import logging as _logging
import os as _os

from spending_anomaly._version import __version__

from .logging import setup_logging, JsonTraceFormatter
from .metrics import create_counter, create_histogram, create_gauge, create_service_info
from .tracing import init_tracing, shutdown_tracing

SERVICE_NAME = "spending-anomaly"

logger = _logging.getLogger("observability")


def init_observability(
    service_name: str = SERVICE_NAME,
    version: str = __version__,
    *,
    log_level: int = _logging.INFO,
    environment: str | None = None,
    log_stream=None,
) -> None:
    """
    Configure JSON logging, span export and the service-info metric.

    Span export is only set up when ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set;
    a failure there is logged and never stops the host process.

    Args:
        service_name: ``service`` log field, ``service.name`` span resource
            and, with ``-`` replaced by ``_``, the info metric name.
        version: Reported on spans and in the info metric.
        log_level: Root log level.
        environment: Info metric label; ``$ENVIRONMENT`` or ``"development"``.
        log_stream: Where JSON lines are written; stderr by default.
    """
    setup_logging(log_level, service_name=service_name, stream=log_stream)

    if _os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT"):
        try:
            init_tracing(service_name, version=version)
        except Exception as exc:
            logger.warning("Span export disabled, tracer setup failed: %s", exc)
    else:
        logger.info("Span export disabled: OTEL_EXPORTER_OTLP_ENDPOINT not set")

    create_service_info(service_name.replace("-", "_"), version, environment)
    logger.info("Observability ready for %s %s", service_name, version)


def shutdown_observability() -> None:
    """Flush pending spans before the host process exits."""
    shutdown_tracing()


__all__ = [
    "SERVICE_NAME",
    "init_observability",
    "shutdown_observability",
    "setup_logging",
    "JsonTraceFormatter",
    "create_counter",
    "create_histogram",
    "create_gauge",
    "create_service_info",
    "init_tracing",
    "shutdown_tracing",
]

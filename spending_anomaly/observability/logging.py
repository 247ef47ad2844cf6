"""
JSON log output for the engine.

Engine modules log through plain named loggers (``detector``, ``baseline``,
``validation``, ...).  ``setup_logging`` only decides how those records leave
the process: one JSON object per line, tagged with the service name and,
when the record was emitted inside a span (model training, detection, a
baseline check), with the OpenTelemetry trace and span ids.

Usage::

    from spending_anomaly.observability.logging import setup_logging

    setup_logging(service_name="insights-worker")   # once, at startup
"""

import logging

from opentelemetry.instrumentation.logging import LoggingInstrumentor
from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter


_FORMAT_STRING = "%(created)s %(levelname)s %(name)s %(message)s"
_RENAMED = {"created": "timestamp", "levelname": "level", "name": "logger"}
# Attributes LoggingInstrumentor adds to every record; surfaced as trace_id/span_id
_OTEL_ATTRS = ("otelTraceID", "otelSpanID", "otelTraceSampled", "otelServiceName")
_setup_done = False


class JsonTraceFormatter(JsonFormatter):
    """``timestamp``/``level``/``logger``/``message`` plus ``extra`` fields.

    ``trace_id`` and ``span_id`` are added only for records logged inside a
    recording span.
    """

    def __init__(self, service_name: str | None = None):
        super().__init__(
            _FORMAT_STRING,
            rename_fields=dict(_RENAMED),
            static_fields={"service": service_name} if service_name else None,
            reserved_attrs=[*RESERVED_ATTRS, *_OTEL_ATTRS],
        )

    def add_fields(self, log_data, record, message_dict):
        super().add_fields(log_data, record, message_dict)
        trace_id = getattr(record, "otelTraceID", "0")
        if trace_id and trace_id != "0":
            log_data["trace_id"] = trace_id
            log_data["span_id"] = getattr(record, "otelSpanID", "")


def setup_logging(
    level: int = logging.INFO,
    service_name: str | None = None,
    stream=None,
) -> None:
    """
    Route every engine log record through one JSON handler on the root logger.

    Only the first call has an effect.

    Args:
        level: Root log level.
        service_name: Added to every line as ``service``.
        stream: Output stream; ``sys.stderr`` when omitted.
    """
    global _setup_done
    if _setup_done:
        return
    _setup_done = True

    LoggingInstrumentor().instrument(set_logging_format=False, inject_trace_context=True)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonTraceFormatter(service_name))

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

"""
Prometheus collectors for the engine.

Collectors are declared at import time in the default registry.  Asking for
a name that is already registered returns the existing collector, so
re-importing a module that declares metrics never fails with a duplicate
timeseries error.
"""

import os

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, Info


def _get_or_create(metric_cls, name, documentation, **kwargs):
    existing = REGISTRY._names_to_collectors.get(name)
    if existing is None:
        return metric_cls(name, documentation, **kwargs)
    if not isinstance(existing, metric_cls):
        raise ValueError(
            f"metric {name!r} is already registered as {type(existing).__name__}"
        )
    return existing


def create_counter(name: str, documentation: str, labelnames=()) -> Counter:
    return _get_or_create(Counter, name, documentation, labelnames=labelnames)


def create_histogram(
    name: str, documentation: str, buckets=None, labelnames=()
) -> Histogram:
    if buckets:
        return _get_or_create(
            Histogram, name, documentation, labelnames=labelnames, buckets=buckets
        )
    return _get_or_create(Histogram, name, documentation, labelnames=labelnames)


def create_gauge(name: str, documentation: str, labelnames=()) -> Gauge:
    return _get_or_create(Gauge, name, documentation, labelnames=labelnames)


def create_service_info(name: str, version: str, environment: str | None = None) -> Info:
    """
    Publish ``<name>_info{version, environment}`` for the running engine.

    ``environment`` falls back to ``$ENVIRONMENT``, then ``"development"``.
    """
    info = _get_or_create(Info, name, "Spending engine build information")
    info.info({
        "version": version,
        "environment": environment or os.environ.get("ENVIRONMENT", "development"),
    })
    return info

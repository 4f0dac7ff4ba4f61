"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "kni_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

RECORDS_LOADED = Counter(
    "kni_records_loaded_total",
    "Records produced by source loaders",
    labelnames=("source_type",),
    registry=REGISTRY,
)

SOURCE_OUTCOMES = Counter(
    "kni_source_outcomes_total",
    "Per-source load outcomes",
    labelnames=("source_type", "status"),
    registry=REGISTRY,
)

LOAD_DURATION = Histogram(
    "kni_load_duration_seconds",
    "Time spent loading a single source",
    labelnames=("source_type",),
    registry=REGISTRY,
)

STORED_DOCUMENTS = Gauge(
    "kni_stored_documents",
    "Number of documents held by the knowledge store",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "RECORDS_LOADED",
    "SOURCE_OUTCOMES",
    "LOAD_DURATION",
    "STORED_DOCUMENTS",
    "metrics_response",
]

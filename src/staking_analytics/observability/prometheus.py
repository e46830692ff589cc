from __future__ import annotations

from typing import Literal

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

PROMETHEUS_CONTENT_TYPE = CONTENT_TYPE_LATEST

CacheResult = Literal["hit", "miss", "expired", "malformed", "error", "write_error"]
SourceName = Literal["price_history", "tvl"]


def _build_registry() -> tuple[CollectorRegistry, Counter, Counter, Counter, Histogram]:
    registry = CollectorRegistry()
    cache_counter = Counter(
        "valuation_cache_requests_total",
        "Cache lookups and writes grouped by artifact and outcome",
        labelnames=("artifact", "result"),
        registry=registry,
    )
    source_failures = Counter(
        "valuation_source_failures_total",
        "Upstream price/chain source failures",
        labelnames=("source",),
        registry=registry,
    )
    valuations_counter = Counter(
        "valuations_computed_total",
        "Freshly computed valuations grouped by remark",
        labelnames=("remarks",),
        registry=registry,
    )
    compute_latency = Histogram(
        "valuation_compute_seconds",
        "Latency of a cache-miss valuation (fetch and compute)",
        buckets=(
            0.05,
            0.1,
            0.25,
            0.5,
            1.0,
            2.5,
            5.0,
            10.0,
            30.0,
        ),
        registry=registry,
    )
    return registry, cache_counter, source_failures, valuations_counter, compute_latency


_registry, _cache_counter, _source_failures, _valuations_counter, _compute_latency = _build_registry()


def record_cache_request(artifact: str, result: CacheResult) -> None:
    _cache_counter.labels(artifact=artifact, result=result).inc()


def record_source_failure(source: SourceName) -> None:
    _source_failures.labels(source=source).inc()


def record_valuation(remarks: str, duration_seconds: float | None = None) -> None:
    _valuations_counter.labels(remarks=remarks).inc()
    if duration_seconds is not None and duration_seconds >= 0:
        _compute_latency.observe(duration_seconds)


def generate_prometheus_metrics() -> bytes:
    return generate_latest(_registry)


def reset_prometheus_metrics() -> None:
    global _registry, _cache_counter, _source_failures, _valuations_counter, _compute_latency
    _registry, _cache_counter, _source_failures, _valuations_counter, _compute_latency = _build_registry()

"""
Observability helpers (metrics, logging instrumentation, etc.).
"""

from .prometheus import (
    PROMETHEUS_CONTENT_TYPE,
    generate_prometheus_metrics,
    record_cache_request,
    record_source_failure,
    record_valuation,
    reset_prometheus_metrics,
)

__all__ = [
    "PROMETHEUS_CONTENT_TYPE",
    "generate_prometheus_metrics",
    "record_cache_request",
    "record_source_failure",
    "record_valuation",
    "reset_prometheus_metrics",
]

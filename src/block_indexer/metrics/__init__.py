"""
Metrics module for observability.

Provides counters, gauges, and histograms for tracking pipeline behavior.
Exposes metrics in Prometheus text format.
"""

from .registry import (
    REGISTRY,
    blocks_fetched,
    blocks_saved,
    cursor_block,
    fetch_failures,
    fetch_time,
    generate_metrics,
    sink_failures,
    source_head_block,
)

__all__ = [
    "REGISTRY",
    "blocks_fetched",
    "blocks_saved",
    "cursor_block",
    "fetch_failures",
    "fetch_time",
    "generate_metrics",
    "sink_failures",
    "source_head_block",
]

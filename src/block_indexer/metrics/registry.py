"""
Metric registry using prometheus_client.

Provides pre-defined metrics for the indexer pipeline.
Exposes metrics in Prometheus text format via the /metrics endpoint.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a dedicated registry for indexer metrics.
#
# Using a dedicated registry avoids pollution from default Python process metrics.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Chain Position
# -----------------------------------------------------------------------------

cursor_block = Gauge(
    "indexer_cursor_block",
    "Last block number handed to the persistence drain",
    registry=REGISTRY,
)

source_head_block = Gauge(
    "indexer_source_head_block",
    "Latest block number reported by the source",
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Fetching
# -----------------------------------------------------------------------------

blocks_fetched = Counter(
    "indexer_blocks_fetched_total",
    "Total blocks fetched from the source",
    registry=REGISTRY,
)

fetch_failures = Counter(
    "indexer_fetch_failures_total",
    "Failed block fetch attempts (each retry counts once)",
    registry=REGISTRY,
)

fetch_time = Histogram(
    "indexer_fetch_seconds",
    "Duration of successful block fetches",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Persistence
# -----------------------------------------------------------------------------

blocks_saved = Counter(
    "indexer_blocks_saved_total",
    "Blocks written to the sink",
    registry=REGISTRY,
)

sink_failures = Counter(
    "indexer_sink_failures_total",
    "Blocks the sink failed to write and that were dropped",
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)

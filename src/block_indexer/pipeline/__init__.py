"""
Block ingestion pipeline.

What Is It?
-----------
The pipeline moves blocks from a ledger source to a durable sink, in order,
with no gaps. It covers both finite historical backfills and unbounded live
tailing.

How It Works
------------
- A readiness gate waits until the start block exists at the source
- A producer task fetches blocks sequentially (backfill), then optionally
  follows live notices, filling any gaps between them (catch-up)
- A bounded handoff channel carries records to a drain task
- The drain writes each record to the sink, logging failures

Exactly two tasks run per pipeline: the producer and the drain.
"""

from __future__ import annotations

__all__ = [
    # Orchestrator
    "Pipeline",
    "PipelineMode",
    "PipelineProgress",
    # States
    "PipelineState",
    # Configuration
    "PipelineConfig",
    "GapFillPolicy",
    "READINESS_POLL_INTERVAL",
    "DEFAULT_RETRY_DELAY",
    # Stages
    "ReadinessGate",
    "RetryingFetcher",
    "RetryStrategy",
    "FixedDelay",
    "BackfillStage",
    "CatchUpReconciler",
    "HandoffChannel",
    "PersistenceDrain",
    "Cursor",
    "StopSignal",
    # Errors
    "PipelineError",
    "ConfigurationConflictError",
    "StartInFutureError",
    "SubscriptionTransportError",
    "GapFillError",
    "ChannelClosedError",
    "StopRequested",
]

from .backfill import BackfillStage
from .catchup import CatchUpReconciler
from .config import DEFAULT_RETRY_DELAY, READINESS_POLL_INTERVAL, GapFillPolicy, PipelineConfig
from .cursor import Cursor
from .drain import PersistenceDrain
from .errors import (
    ChannelClosedError,
    ConfigurationConflictError,
    GapFillError,
    PipelineError,
    StartInFutureError,
    StopRequested,
    SubscriptionTransportError,
)
from .fetcher import FixedDelay, RetryingFetcher, RetryStrategy
from .handoff import HandoffChannel
from .readiness import ReadinessGate
from .service import Pipeline, PipelineMode, PipelineProgress
from .states import PipelineState
from .stop import StopSignal

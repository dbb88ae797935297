"""
Pipeline configuration.

`PipelineConfig` is constructed once, validated, and passed explicitly to
the orchestrator. It is frozen: nothing changes it during a run.
"""

from __future__ import annotations

from enum import Enum
from typing import Final

from pydantic import Field, model_validator

from block_indexer.types import StrictBaseModel

from .errors import ConfigurationConflictError

READINESS_POLL_INTERVAL: Final[float] = 5.0
"""Seconds between head polls while waiting for a future start block."""

DEFAULT_RETRY_DELAY: Final[float] = 10.0
"""Seconds to wait before retrying a failed block fetch."""

DEFAULT_BLOCK_BUFFER_SIZE: Final[int] = 0
"""Handoff channel capacity. Zero makes every push a rendezvous with the drain."""

DEFAULT_HEADERS_BUFFER_SIZE: Final[int] = 0
"""Notification queue capacity for live subscriptions."""


class GapFillPolicy(Enum):
    """
    What the reconciler does when a missed block cannot be fetched.

    RETRY applies the fetcher's unbounded retry, the same policy as the
    historical backfill. FAIL ends the run with a GapFillError on the first
    failure.
    """

    RETRY = "retry"
    FAIL = "fail"


class PipelineConfig(StrictBaseModel):
    """
    Validated, immutable settings for one pipeline run.

    Live Mode
    ---------
    With `live` set, the start block is resolved to the source head at launch.
    An explicit `start` or `allow_future_start` conflicts with that and is
    rejected here, before any task starts.
    """

    start: int | None = Field(default=None, ge=0)
    """First block to index. Absent means 0, or the current head in live mode."""

    end: int | None = Field(default=None, ge=0)
    """Last block of the historical backfill, inclusive. Absent means unbounded."""

    live: bool = False
    """Start from the source head at launch instead of `start`."""

    allow_future_start: bool = False
    """Wait for the source to reach `start` instead of failing."""

    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)
    """Fixed delay between fetch attempts, in seconds."""

    block_buffer_size: int = Field(default=DEFAULT_BLOCK_BUFFER_SIZE, ge=0)
    """Capacity of the handoff channel between producer and drain."""

    headers_buffer_size: int = Field(default=DEFAULT_HEADERS_BUFFER_SIZE, ge=0)
    """Capacity of the new-head notification queue."""

    gap_fill_policy: GapFillPolicy = GapFillPolicy.RETRY
    """Failure policy for blocks fetched between two live notices."""

    readiness_poll_interval: float = Field(default=READINESS_POLL_INTERVAL, gt=0)
    """Seconds between head polls in the readiness gate."""

    @model_validator(mode="after")
    def check_consistency(self) -> PipelineConfig:
        """Reject live-mode conflicts and inverted ranges."""
        if self.live and (self.start is not None or self.allow_future_start):
            raise ConfigurationConflictError(
                "When live mode is enabled, start and allow_future_start cannot be set"
            )
        if self.end is not None and self.effective_start > self.end:
            raise ValueError(
                f"start must be <= end, got start = {self.effective_start} and end = {self.end}"
            )
        return self

    @property
    def effective_start(self) -> int:
        """Configured start block, defaulting to genesis."""
        return 0 if self.start is None else self.start

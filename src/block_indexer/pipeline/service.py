"""
Pipeline orchestrator.

This is the main entry point for indexing.

The Core Problem
----------------
Blocks must reach the sink in order, without gaps, while the source is
slow, flaky, and keeps producing new blocks. The orchestrator wires the
stages so that:

1. Nothing starts before the start block exists at the source
2. Exactly one producer task advances the cursor
3. Exactly one drain task writes to the sink
4. The only backpressure is the handoff channel between the two

Run Modes
---------
The mode is fixed for the run's lifetime:

- POLLING: backfill by number through `end`, or forever if unbounded
- SUBSCRIPTION: backfill by number through `end` (or the head at launch),
  then follow new-head notices through the catch-up reconciler

Each mode has a live variant (`PipelineConfig.live`): the start block is the
source head at launch and the future-start check is skipped.

Shutdown
--------
The producer always closes the channel when it returns, whether it reached
the end boundary, was stopped, or hit a fatal error. The drain then persists
what is left and exits, and both tasks are joined. A fatal producer error is
re-raised from `run()` only after that, so no queued record is abandoned.

Cancelling `run()` is different: both tasks are cancelled, the channel is
closed without waiting, and records still queued are not persisted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from block_indexer import metrics
from block_indexer.chain import LedgerSource
from block_indexer.storage import BlockSink

from .backfill import BackfillStage
from .catchup import CatchUpReconciler
from .config import PipelineConfig
from .cursor import Cursor
from .drain import PersistenceDrain
from .errors import StopRequested
from .fetcher import FixedDelay, RetryingFetcher, RetryStrategy
from .handoff import HandoffChannel
from .readiness import ReadinessGate
from .states import PipelineState
from .stop import StopSignal

logger = logging.getLogger(__name__)


class PipelineMode(Enum):
    """How the producer follows the chain after the historical range."""

    POLLING = "polling"
    """Sequential fetch by number only."""

    SUBSCRIPTION = "subscription"
    """Sequential fetch, then live new-head notices."""


@dataclass(slots=True)
class PipelineProgress:
    """
    Current pipeline progress.

    Provides a snapshot of the run for monitoring and logging.
    """

    state: PipelineState
    """Current state machine state."""

    mode: PipelineMode | None = None
    """Run mode, once selected."""

    start: int | None = None
    """Resolved first block, once known."""

    end: int | None = None
    """Configured end of the historical range, if any."""

    last_processed: int | None = None
    """Cursor position: last block handed to the drain."""

    blocks_produced: int = 0
    """Blocks pushed onto the handoff channel this run."""

    blocks_saved: int = 0
    """Blocks the sink accepted this run."""

    sink_failures: int = 0
    """Blocks the sink rejected this run."""

    pending: int = 0
    """Blocks waiting in the handoff channel."""


@dataclass(slots=True)
class Pipeline:
    """
    Orchestrates one indexing run.

    A Pipeline is single-use: `run()` may be called once. Construct a new
    one to index again.
    """

    source: LedgerSource
    """Ledger data source."""

    sink: BlockSink
    """Persistence sink."""

    config: PipelineConfig
    """Validated settings for this run."""

    mode: PipelineMode | None = None
    """Run mode. Defaults to SUBSCRIPTION when the source supports it."""

    retry_strategy: RetryStrategy | None = None
    """Delay policy for failed fetches. Defaults to FixedDelay(config.retry_delay)."""

    _state: PipelineState = field(default=PipelineState.IDLE)
    """Current state."""

    _stop: StopSignal = field(default_factory=StopSignal)
    """Graceful stop signal shared with every stage."""

    _start: int | None = field(default=None)
    """Resolved start block."""

    _cursor: Cursor | None = field(default=None)
    """Producer cursor. Only the producer writes it."""

    _channel: HandoffChannel | None = field(default=None)
    """Handoff channel for the current run."""

    _drain: PersistenceDrain | None = field(default=None)
    """Drain for the current run."""

    _failure: Exception | None = field(default=None)
    """Fatal producer error, re-raised after both tasks are joined."""

    @property
    def state(self) -> PipelineState:
        """Current state."""
        return self._state

    @property
    def cursor(self) -> Cursor | None:
        """Producer cursor, once the run has started."""
        return self._cursor

    @property
    def resolved_mode(self) -> PipelineMode:
        """Mode used for this run."""
        if self.mode is not None:
            return self.mode
        if self.source.supports_subscription:
            return PipelineMode.SUBSCRIPTION
        return PipelineMode.POLLING

    @property
    def progress(self) -> PipelineProgress:
        """Snapshot of the run for monitoring."""
        return PipelineProgress(
            state=self._state,
            mode=self.resolved_mode,
            start=self._start,
            end=self.config.end,
            last_processed=self._cursor.last_processed if self._cursor else None,
            blocks_produced=self._cursor.advanced if self._cursor else 0,
            blocks_saved=self._drain.saved if self._drain else 0,
            sink_failures=self._drain.failed if self._drain else 0,
            pending=self._channel.pending() if self._channel else 0,
        )

    def stop(self) -> None:
        """
        Request a graceful stop.

        The producer finishes the block in hand, the drain persists what was
        already queued, and `run()` returns.
        """
        self._stop.request()

    def _transition(self, target: PipelineState) -> None:
        if not self._state.can_transition_to(target):
            raise RuntimeError(f"Invalid pipeline transition {self._state.name} -> {target.name}")
        logger.debug("Pipeline state %s -> %s", self._state.name, target.name)
        self._state = target

    async def run(self) -> PipelineProgress:
        """
        Run the pipeline until the range is done, a stop, or a fatal error.

        Returns:
            Final progress snapshot.

        Raises:
            StartInFutureError: If the start block is ahead of the source.
            SubscriptionTransportError: If the live subscription fails.
            GapFillError: If reconciling fails under the FAIL policy.
            RuntimeError: If the pipeline was already run.
        """
        if self._state is not PipelineState.IDLE:
            raise RuntimeError("Pipeline can only be run once")

        mode = self.resolved_mode
        self._transition(PipelineState.READINESS_CHECK)
        logger.info("Starting pipeline in %s mode", mode.value)

        try:
            start = await self._resolve_start()
        except StopRequested:
            self._transition(PipelineState.TERMINATED)
            return self.progress
        except asyncio.CancelledError:
            self._transition(PipelineState.TERMINATED)
            raise
        except Exception:
            self._transition(PipelineState.FAILED)
            raise

        self._start = start
        self._cursor = Cursor.before(start)
        self._channel = HandoffChannel(self.config.block_buffer_size)
        self._drain = PersistenceDrain(channel=self._channel, sink=self.sink)

        self._transition(PipelineState.BACKFILLING)

        # Exactly two tasks: one producer, one drain.
        #
        # The producer never raises out of its task. It records fatal errors
        # instead, so the task group does not cancel the drain while records
        # are still queued.
        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._produce(mode, self._cursor, self._channel))
                tg.create_task(self._drain.run())
        except asyncio.CancelledError:
            # Both tasks are joined; records still queued are abandoned.
            # A producer cancelled before its first step never left BACKFILLING.
            if self._state.is_producing:
                self._transition(PipelineState.DRAINING)
            self._transition(PipelineState.TERMINATED)
            raise

        if self._failure is not None:
            self._transition(PipelineState.FAILED)
            raise self._failure

        self._transition(PipelineState.TERMINATED)
        logger.info(
            "Pipeline finished at block %d (%d saved, %d failed)",
            self._cursor.last_processed,
            self._drain.saved,
            self._drain.failed,
        )
        return self.progress

    async def _resolve_start(self) -> int:
        """Pick the first block and wait until the source has it."""
        if self.config.live:
            head = await self.source.current_head()
            metrics.source_head_block.set(head)
            logger.info("Live mode: starting at current head %d", head)
            return head

        start = self.config.effective_start
        gate = ReadinessGate(
            source=self.source,
            stop=self._stop,
            poll_interval=self.config.readiness_poll_interval,
        )
        await gate.wait_until_ready(start, self.config.allow_future_start)
        return start

    async def _produce(self, mode: PipelineMode, cursor: Cursor, channel: HandoffChannel) -> None:
        """Producer task: backfill, then optionally follow live notices."""
        fetcher = RetryingFetcher(
            source=self.source,
            strategy=self.retry_strategy or FixedDelay(self.config.retry_delay),
            stop=self._stop,
        )
        try:
            end = self.config.end
            if mode is PipelineMode.SUBSCRIPTION and end is None:
                # The historical range must be finite before handing over
                # to notices. Bound it by the head at launch.
                end = await fetcher.current_head()
                logger.info("Backfilling through current head %d before subscribing", end)

            backfill = BackfillStage(fetcher=fetcher, channel=channel, stop=self._stop)
            await backfill.run(cursor, end)

            if mode is PipelineMode.SUBSCRIPTION and not self._stop.requested:
                self._transition(PipelineState.CATCHING_UP)
                reconciler = CatchUpReconciler(
                    source=self.source,
                    fetcher=fetcher,
                    channel=channel,
                    headers_buffer_size=self.config.headers_buffer_size,
                    gap_fill_policy=self.config.gap_fill_policy,
                    stop=self._stop,
                )
                await reconciler.run(cursor)
        except StopRequested as e:
            logger.info("Producer stopped: %s", e)
        except asyncio.CancelledError:
            # The drain is cancelled too, so nothing will make room in the channel.
            channel.close_nowait()
            raise
        except Exception as e:
            logger.error("Producer failed at block %d: %s", cursor.next_number, e)
            self._failure = e
        finally:
            self._transition(PipelineState.DRAINING)
            await channel.close()

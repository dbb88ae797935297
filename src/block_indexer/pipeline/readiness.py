"""
Readiness gate for the pipeline start block.

A backfill cannot start at a block the source has not produced yet. The gate
polls the source head until the start block exists, or refuses outright when
future starts are disallowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from block_indexer import metrics
from block_indexer.chain import LedgerSource

from .config import READINESS_POLL_INTERVAL
from .errors import StartInFutureError, StopRequested
from .stop import StopSignal

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReadinessGate:
    """Blocks pipeline start until `start <= head`."""

    source: LedgerSource
    """Source whose head is polled."""

    stop: StopSignal = field(default_factory=StopSignal)
    """Stop signal that interrupts the poll sleep."""

    poll_interval: float = READINESS_POLL_INTERVAL
    """Seconds between head polls."""

    async def wait_until_ready(self, start: int, allow_future_start: bool) -> int:
        """
        Wait until the source head reaches `start`.

        Source errors are not retried: they propagate to the caller at once.

        Args:
            start: Requested first block.
            allow_future_start: Whether to wait instead of failing when the
                start block is ahead of the head.

        Returns:
            The head number observed when the gate opened.

        Raises:
            StartInFutureError: If start is ahead and future starts are disallowed.
            StopRequested: If a stop was requested while waiting.
        """
        while True:
            head = await self.source.current_head()
            metrics.source_head_block.set(head)

            if start <= head:
                return head

            if not allow_future_start:
                raise StartInFutureError(start, head)

            logger.info(
                "Start block %d is in the future (latest block: %d), waiting...", start, head
            )
            if await self.stop.sleep(self.poll_interval):
                raise StopRequested("stopped while waiting for the start block")

"""
Sequential backfill stage.

Replays the historical range block by block, in increasing order:

1. Fetch the next number through the retrying fetcher
2. Push the record onto the handoff channel (may block on backpressure)
3. Advance the cursor

Fetches are strictly sequential. The channel preserves push order and the
cursor advances by exactly one per record, so the sink sees a gap-free,
increasing sequence.

In polling mode this stage is the whole producer. In subscription mode it
runs first and then hands the cursor to the catch-up reconciler; the
hand-over is one-way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .cursor import Cursor
from .fetcher import RetryingFetcher
from .handoff import HandoffChannel
from .stop import StopSignal

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BackfillStage:
    """Drives the fetcher across a contiguous range [cursor + 1, end]."""

    fetcher: RetryingFetcher
    """Fetcher with unbounded retry."""

    channel: HandoffChannel
    """Channel to the persistence drain."""

    stop: StopSignal = field(default_factory=StopSignal)
    """Stop signal checked between blocks."""

    async def run(self, cursor: Cursor, end: int | None) -> None:
        """
        Backfill from `cursor.next_number` through `end`.

        Args:
            cursor: Producer-owned cursor. Advanced after every push.
            end: Last block to fetch, inclusive. None means unbounded.

        Returns when the end boundary has been passed or a stop was requested.

        Raises:
            StopRequested: If a stop interrupted a retry sleep.
        """
        while not self.stop.requested:
            number = cursor.next_number
            if end is not None and number > end:
                logger.info("Reached end block %d, stopping backfill", end)
                return

            record = await self.fetcher.fetch_by_number(number)
            if record.number != number:
                logger.warning(
                    "Source returned block %d when asked for %d", record.number, number
                )

            await self.channel.put(record)
            cursor.advance_to(number)
            logger.info("Processed block %d", number)

        logger.info("Backfill stopped after block %d", cursor.last_processed)

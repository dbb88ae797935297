"""
Persistence drain.

Pulls records off the handoff channel and forwards each to the sink until
the channel is closed. Sink calls are synchronous and run in a worker thread
so a slow disk never stalls the event loop.

A sink failure is logged and the record is dropped: the drain neither
retries nor stops, and later records are not held back.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from block_indexer import metrics
from block_indexer.storage import BlockSink

from .handoff import HandoffChannel

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PersistenceDrain:
    """Consumer task forwarding records from the channel to the sink."""

    channel: HandoffChannel
    """Channel fed by the producer."""

    sink: BlockSink
    """Durable destination for records."""

    saved: int = 0
    """Records the sink accepted."""

    failed: int = 0
    """Records the sink rejected (dropped)."""

    async def run(self) -> None:
        """Drain the channel until it is closed and empty."""
        async for record in self.channel:
            try:
                await asyncio.to_thread(self.sink.save, record)
            except Exception as e:
                self.failed += 1
                metrics.sink_failures.inc()
                logger.error("Failed to save block %d: %s", record.number, e)
                continue

            self.saved += 1
            metrics.blocks_saved.inc()

        logger.debug("Drain finished: %d saved, %d failed", self.saved, self.failed)

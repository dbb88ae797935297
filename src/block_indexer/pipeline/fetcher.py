"""
Retrying block fetcher.

Historical blocks must never be skipped. A failed lookup is therefore
retried forever, with a delay between attempts, until it succeeds or the
pipeline is stopped or cancelled. There is no attempt limit: giving up would
mean a silent gap in the sink.

The delay comes from a RetryStrategy. The default is a fixed delay, which
keeps the sequencing simple and predictable; any other strategy changes only
the spacing of attempts, never which block is fetched next.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from block_indexer import metrics
from block_indexer.chain import BlockRecord, LedgerSource

from .errors import StopRequested
from .stop import StopSignal

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryStrategy(Protocol):
    """Protocol for spacing fetch attempts."""

    def delay(self, attempt: int) -> float:
        """
        Seconds to wait after failed attempt number `attempt` (1-based).

        Args:
            attempt: How many attempts have failed so far for this block.
        """
        ...


@dataclass(frozen=True, slots=True)
class FixedDelay:
    """Wait the same number of seconds after every failure."""

    seconds: float
    """Delay between attempts."""

    def delay(self, attempt: int) -> float:
        """Return the fixed delay regardless of the attempt count."""
        return self.seconds


@dataclass(slots=True)
class RetryingFetcher:
    """
    Resolves a block number or hash into a record, or reads the source head,
    retrying on failure.

    The fetcher never gives up on its own. The only ways out of the retry
    loop are success, a stop request (raises StopRequested), or task
    cancellation.
    """

    source: LedgerSource
    """Source to fetch from."""

    strategy: RetryStrategy
    """Delay policy between attempts."""

    stop: StopSignal = field(default_factory=StopSignal)
    """Stop signal that interrupts the retry sleep."""

    async def fetch_by_number(self, number: int) -> BlockRecord:
        """Fetch block `number`, retrying until it succeeds."""
        return await self._fetch(f"block {number}", lambda: self.source.fetch_by_number(number))

    async def fetch_by_hash(self, block_hash: str) -> BlockRecord:
        """Fetch the block with `block_hash`, retrying until it succeeds."""
        return await self._fetch(
            f"block {block_hash}", lambda: self.source.fetch_by_hash(block_hash)
        )

    async def current_head(self) -> int:
        """Read the source head, retrying until it succeeds."""
        head = await self._retry("the current head", self.source.current_head)
        metrics.source_head_block.set(head)
        return head

    async def _fetch(
        self,
        label: str,
        lookup: Callable[[], Awaitable[BlockRecord]],
    ) -> BlockRecord:
        async def timed() -> BlockRecord:
            started = time.perf_counter()
            record = await lookup()
            metrics.fetch_time.observe(time.perf_counter() - started)
            return record

        record = await self._retry(label, timed)
        metrics.blocks_fetched.inc()
        return record

    async def _retry(self, label: str, lookup: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await lookup()
            except Exception as e:
                attempt += 1
                delay = self.strategy.delay(attempt)
                metrics.fetch_failures.inc()
                logger.warning(
                    "Failed to fetch %s: %s. Retrying in %.1f seconds (attempt %d)...",
                    label,
                    e,
                    delay,
                    attempt,
                )
                if await self.stop.sleep(delay):
                    raise StopRequested(f"stopped while retrying {label}") from e

"""
Catch-up reconciler for live subscriptions.

After the historical backfill, the pipeline follows the chain through
new-head notices. Notices are not a reliable sequence on their own:

- The transport may coalesce several new blocks into one notice
- Notices may be dropped during a brief disconnect on the node side

So each notice is reconciled against the cursor before its block is
accepted:

1. Every number strictly between the cursor and the notice is fetched by
   number (the gap fill)
2. The notified block itself is fetched by hash, since a competing block
   may carry the same number

The output stays gap-free and strictly increasing. Reorgs are not handled:
a notice at or below the cursor is logged and skipped.

Failure Policy
--------------
A subscription transport error is fatal. A fetch failure during reconciling
follows the configured GapFillPolicy: RETRY uses the fetcher's unbounded
retry, FAIL ends the run with a GapFillError.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from block_indexer.chain import BlockHeaderNotice, BlockRecord, LedgerSource, Subscription

from .config import GapFillPolicy
from .cursor import Cursor
from .errors import GapFillError, StopRequested, SubscriptionTransportError
from .fetcher import RetryingFetcher
from .handoff import HandoffChannel
from .stop import StopSignal

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CatchUpReconciler:
    """Follows new-head notices, filling gaps so no block is skipped."""

    source: LedgerSource
    """Source providing the subscription and direct lookups."""

    fetcher: RetryingFetcher
    """Fetcher used under the RETRY policy."""

    channel: HandoffChannel
    """Channel to the persistence drain."""

    headers_buffer_size: int = 0
    """Capacity of the notice queue. Zero is treated as a single slot."""

    gap_fill_policy: GapFillPolicy = GapFillPolicy.RETRY
    """What to do when a block cannot be fetched while reconciling."""

    stop: StopSignal = field(default_factory=StopSignal)
    """Stop signal that ends the notice loop."""

    async def run(self, cursor: Cursor) -> None:
        """
        Subscribe and reconcile notices until stopped.

        Args:
            cursor: Cursor handed over by the backfill stage.

        Raises:
            SubscriptionTransportError: If subscribing fails or the
                subscription reports an error.
            GapFillError: If a fetch fails under the FAIL policy.
        """
        notices: asyncio.Queue[BlockHeaderNotice] = asyncio.Queue(
            maxsize=max(self.headers_buffer_size, 1)
        )
        try:
            subscription = await self.source.subscribe_new_heads(notices)
        except Exception as e:
            raise SubscriptionTransportError(f"Failed to subscribe to new blocks: {e}") from e

        logger.info("Following new heads from block %d", cursor.last_processed)
        try:
            while True:
                notice = await self._next_notice(notices, subscription)
                if notice is None:
                    logger.info("Live tail stopped at block %d", cursor.last_processed)
                    return
                await self.reconcile(cursor, notice)
        finally:
            await subscription.unsubscribe()

    async def _next_notice(
        self,
        notices: asyncio.Queue[BlockHeaderNotice],
        subscription: Subscription,
    ) -> BlockHeaderNotice | None:
        """
        Wait for the next notice, a subscription error, or a stop request.

        Returns:
            The notice, or None if a stop was requested.

        Raises:
            SubscriptionTransportError: If the subscription reported an error.
        """
        notice_task = asyncio.ensure_future(notices.get())
        error_task = asyncio.ensure_future(subscription.errors.get())
        stop_task = asyncio.ensure_future(self.stop.wait())
        waiters = {notice_task, error_task, stop_task}
        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

        # Transport errors win over a notice that arrived at the same time.
        if error_task in done:
            raise SubscriptionTransportError(f"Subscription error: {error_task.result()}")
        if notice_task in done:
            return notice_task.result()
        return None

    async def reconcile(self, cursor: Cursor, notice: BlockHeaderNotice) -> None:
        """
        Accept one notice: fill the gap before it, then take its block.

        Args:
            cursor: Producer-owned cursor.
            notice: The new-head notice to reconcile.
        """
        if notice.number <= cursor.last_processed:
            logger.warning(
                "Ignoring notice for block %d (%s): already at block %d",
                notice.number,
                notice.hash,
                cursor.last_processed,
            )
            return

        # Fill the gap (last_processed, notice.number), both ends exclusive.
        for number in range(cursor.next_number, notice.number):
            if self.stop.requested:
                raise StopRequested(f"stopped while filling gap before block {notice.number}")
            record = await self._fetch_missed(number)
            await self.channel.put(record)
            cursor.advance_to(number)
            logger.info("Processed missed block %d", number)

        record = await self._fetch_notified(notice)
        if record.number != notice.number:
            logger.warning(
                "Block %s reports number %d, notice said %d",
                notice.hash,
                record.number,
                notice.number,
            )
        await self.channel.put(record)
        cursor.advance_to(notice.number)
        logger.info("Processed new block %d", notice.number)

    async def _fetch_missed(self, number: int) -> BlockRecord:
        if self.gap_fill_policy is GapFillPolicy.RETRY:
            return await self.fetcher.fetch_by_number(number)
        try:
            return await self.source.fetch_by_number(number)
        except Exception as e:
            raise GapFillError(number, e) from e

    async def _fetch_notified(self, notice: BlockHeaderNotice) -> BlockRecord:
        if self.gap_fill_policy is GapFillPolicy.RETRY:
            return await self.fetcher.fetch_by_hash(notice.hash)
        try:
            return await self.source.fetch_by_hash(notice.hash)
        except Exception as e:
            raise GapFillError(notice.hash, e) from e

"""
Ledger data source interface.

Defines the Protocols the pipeline consumes. Any object with matching
methods satisfies them; the pipeline never depends on a concrete transport.

Capabilities
------------
- fetch a block by number
- fetch a block by hash
- report the current head number
- push new-head notices into a queue (push-capable transports only)
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from .records import BlockHeaderNotice, BlockRecord


class Subscription(Protocol):
    """
    Handle for a live new-head subscription.

    Notices are delivered into the queue handed to `subscribe_new_heads`.
    Transport failures are delivered on `errors`; the first one ends the
    subscription.
    """

    errors: asyncio.Queue[Exception]
    """Asynchronous error channel for transport failures."""

    async def unsubscribe(self) -> None:
        """Stop delivering notices. Safe to call more than once."""
        ...


class LedgerSource(Protocol):
    """
    Protocol for the ledger data source.

    Implementations raise on failure. The pipeline decides whether a failure
    is retried (historical fetches) or fatal (subscription transport).
    """

    @property
    def supports_subscription(self) -> bool:
        """Whether `subscribe_new_heads` can be used on this transport."""
        ...

    async def fetch_by_number(self, number: int) -> BlockRecord:
        """
        Resolve a block number into a record.

        Args:
            number: Block height to fetch.

        Returns:
            The block at that height.
        """
        ...

    async def fetch_by_hash(self, block_hash: str) -> BlockRecord:
        """
        Resolve a block hash into a record.

        Args:
            block_hash: 0x-prefixed block hash.

        Returns:
            The block with that hash.
        """
        ...

    async def current_head(self) -> int:
        """Return the number of the most recent block known to the source."""
        ...

    async def subscribe_new_heads(
        self,
        notices: asyncio.Queue[BlockHeaderNotice],
    ) -> Subscription:
        """
        Start pushing new-head notices into `notices`.

        Args:
            notices: Queue the source fills. Its capacity bounds how far the
                transport may run ahead of the consumer.

        Returns:
            Handle used to cancel the subscription and observe its errors.
        """
        ...

    async def close(self) -> None:
        """Release transport resources."""
        ...

"""
Abstract sink interface for block persistence.

Defines the Protocol that all sink implementations must follow.
Uses structural subtyping for flexibility.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from block_indexer.chain import BlockRecord


class BlockSink(Protocol):
    """
    Protocol for durable block storage.

    Any class with matching methods satisfies the protocol. Calls are
    synchronous; the drain runs them off the event loop.

    Delivery is at-least-once: after a restart the same block may be saved
    again, so implementations should tolerate duplicates.
    """

    def save(self, record: BlockRecord) -> None:
        """
        Durably record one block.

        Args:
            record: Block to store.

        Raises:
            Exception: Any failure. The drain logs it and drops the record.
        """
        ...

    def close(self) -> None:
        """Flush and release resources."""
        ...

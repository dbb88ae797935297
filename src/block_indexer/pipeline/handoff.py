"""
Bounded handoff channel between the producer and the persistence drain.

This is the only backpressure point in the pipeline. It is a
single-producer, single-consumer FIFO with a fixed capacity:

- capacity 0: every push is a rendezvous; it returns only once the drain
  has taken the record
- capacity k > 0: the producer may run k records ahead of the drain before
  a push blocks

Closing the channel is how the drain learns that the producer is done.
Records pushed before the close are still delivered, in order.
"""

from __future__ import annotations

import asyncio
from typing import Final

from block_indexer.chain import BlockRecord

from .errors import ChannelClosedError

_CLOSED: Final = object()
"""End-of-stream marker queued by `close()`."""


class HandoffChannel:
    """Fixed-capacity ordered conduit for block records."""

    def __init__(self, capacity: int) -> None:
        """
        Initialize the channel.

        Args:
            capacity: Records that may wait in the channel. Zero means
                unbuffered (synchronous rendezvous).

        Raises:
            ValueError: If capacity is negative.
        """
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self.capacity = capacity

        # asyncio.Queue treats maxsize=0 as unbounded, so an unbuffered
        # channel uses a single slot and waits for the consumer on every put.
        self._queue: asyncio.Queue[BlockRecord | object] = asyncio.Queue(
            maxsize=max(capacity, 1)
        )
        self._closed = False
        self._marker_queued = False
        self._exhausted = False

    @property
    def closed(self) -> bool:
        """Whether the producer side has been closed."""
        return self._closed

    def pending(self) -> int:
        """Number of records pushed but not yet taken by the drain."""
        return self._queue.qsize() - (1 if self._marker_queued and not self._exhausted else 0)

    async def put(self, record: BlockRecord) -> None:
        """
        Push a record, waiting while the channel is full.

        With capacity 0, also waits until the drain has taken the record.

        Raises:
            ChannelClosedError: If the channel was closed.
        """
        if self._closed:
            raise ChannelClosedError(f"cannot push block {record.number}: channel closed")
        await self._queue.put(record)
        if self.capacity == 0:
            await self._queue.join()

    async def get(self) -> BlockRecord | None:
        """
        Take the next record.

        Returns:
            The oldest pushed record, or None once the channel is closed and
            every record before the close has been taken.
        """
        if self._exhausted:
            return None
        # Closed without room for the marker: end of stream once empty.
        if self._closed and not self._marker_queued and self._queue.empty():
            self._exhausted = True
            return None
        item = await self._queue.get()
        self._queue.task_done()
        if item is _CLOSED:
            self._exhausted = True
            return None
        assert isinstance(item, BlockRecord)
        return item

    async def close(self) -> None:
        """
        Close the producer side. Idempotent.

        Waits for room if the channel is full, so the end marker always
        lands after the last record.
        """
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)
        self._marker_queued = True

    def close_nowait(self) -> None:
        """
        Close the producer side without waiting. Idempotent.

        Used when the producer is cancelled and nothing may drain the
        channel. The end marker is queued if there is room; otherwise
        `get()` reports end of stream once the queued records are taken.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            return
        self._marker_queued = True

    def __aiter__(self) -> HandoffChannel:
        """Iterate records until the channel is closed and empty."""
        return self

    async def __anext__(self) -> BlockRecord:
        """Return the next record or stop at end of stream."""
        record = await self.get()
        if record is None:
            raise StopAsyncIteration
        return record

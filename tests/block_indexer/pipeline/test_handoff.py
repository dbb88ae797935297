"""Tests for the producer-to-drain handoff channel."""

from __future__ import annotations

import asyncio
import time

import pytest

from block_indexer.pipeline import ChannelClosedError, HandoffChannel
from tests.block_indexer.helpers import make_block


class TestConstruction:
    """Tests for channel construction."""

    def test_negative_capacity_is_rejected(self) -> None:
        """Capacity must be zero or positive."""
        with pytest.raises(ValueError):
            HandoffChannel(-1)

    def test_starts_open_and_empty(self) -> None:
        """A new channel has nothing pending."""
        channel = HandoffChannel(4)
        assert not channel.closed
        assert channel.pending() == 0


class TestOrdering:
    """Records come out in push order, then the end of stream."""

    def test_fifo_then_end(self) -> None:
        """Records pushed before close are all delivered, in order."""

        async def run() -> list[int]:
            channel = HandoffChannel(3)
            for n in range(3):
                await channel.put(make_block(n))
            await channel.close()
            return [record.number async for record in channel]

        assert asyncio.run(run()) == [0, 1, 2]

    def test_get_after_end_keeps_returning_none(self) -> None:
        """The end of stream is sticky."""

        async def run() -> tuple[object, object]:
            channel = HandoffChannel(1)
            await channel.close()
            return await channel.get(), await channel.get()

        assert asyncio.run(run()) == (None, None)

    def test_pending_excludes_end_marker(self) -> None:
        """The close marker is not counted as a pending record."""

        async def run() -> int:
            channel = HandoffChannel(3)
            await channel.put(make_block(0))
            await channel.close()
            return channel.pending()

        assert asyncio.run(run()) == 1


class TestClose:
    """Tests for closing the producer side."""

    def test_put_after_close_raises(self) -> None:
        """A closed channel accepts no more records."""

        async def run() -> None:
            channel = HandoffChannel(2)
            await channel.close()
            await channel.put(make_block(0))

        with pytest.raises(ChannelClosedError):
            asyncio.run(run())

    def test_close_is_idempotent(self) -> None:
        """Closing twice queues a single end marker."""

        async def run() -> list[int]:
            channel = HandoffChannel(2)
            await channel.put(make_block(0))
            await channel.close()
            await channel.close()
            return [record.number async for record in channel]

        assert asyncio.run(run()) == [0]

    def test_close_nowait_on_full_channel_does_not_block(self) -> None:
        """Queued records are still delivered, then the end of stream."""

        async def run() -> list[int | None]:
            channel = HandoffChannel(2)
            await channel.put(make_block(1))
            await channel.put(make_block(2))
            channel.close_nowait()
            assert channel.closed
            assert channel.pending() == 2
            # The awaited close is a no-op once closed.
            await asyncio.wait_for(channel.close(), timeout=0.1)
            return [r.number if r else None for r in [await channel.get() for _ in range(4)]]

        assert asyncio.run(run()) == [1, 2, None, None]

    def test_close_nowait_after_interrupted_rendezvous(self) -> None:
        """A cancelled unbuffered push leaves its record readable before the end."""

        async def run() -> list[int | None]:
            channel = HandoffChannel(0)
            push = asyncio.ensure_future(channel.put(make_block(7)))
            await asyncio.sleep(0.01)
            push.cancel()
            with pytest.raises(asyncio.CancelledError):
                await push
            channel.close_nowait()
            return [r.number if r else None for r in [await channel.get() for _ in range(2)]]

        assert asyncio.run(run()) == [7, None]

    def test_close_nowait_wakes_waiting_consumer(self) -> None:
        """A consumer blocked on an empty channel sees the end of stream."""

        async def run() -> None:
            channel = HandoffChannel(0)
            getter = asyncio.ensure_future(channel.get())
            await asyncio.sleep(0.01)
            channel.close_nowait()
            assert await asyncio.wait_for(getter, timeout=1) is None

        asyncio.run(run())


class TestBackpressure:
    """Tests for blocking behavior."""

    def test_full_buffer_blocks_producer(self) -> None:
        """A push waits while the buffer is at capacity."""

        async def run() -> tuple[bool, bool]:
            channel = HandoffChannel(1)
            await channel.put(make_block(0))
            second = asyncio.ensure_future(channel.put(make_block(1)))
            await asyncio.sleep(0.02)
            blocked = not second.done()
            await channel.get()
            await asyncio.wait_for(second, timeout=1)
            return blocked, second.done()

        assert asyncio.run(run()) == (True, True)

    def test_unbuffered_put_waits_for_consumer(self) -> None:
        """With capacity 0 a push completes only when the drain takes it."""

        async def run() -> tuple[bool, int]:
            channel = HandoffChannel(0)
            put = asyncio.ensure_future(channel.put(make_block(0)))
            await asyncio.sleep(0.02)
            blocked = not put.done()
            record = await channel.get()
            await asyncio.wait_for(put, timeout=1)
            assert record is not None
            return blocked, record.number

        assert asyncio.run(run()) == (True, 0)

    def test_unbuffered_push_latency_tracks_drain(self) -> None:
        """With capacity 0 and a drain taking T per record, a push takes at least T."""
        drain_time = 0.05

        async def run() -> float:
            channel = HandoffChannel(0)

            async def drain() -> None:
                async for _ in channel:
                    await asyncio.sleep(drain_time)

            consumer = asyncio.ensure_future(drain())
            # The first push meets an idle drain.
            await channel.put(make_block(0))
            started = time.monotonic()
            await channel.put(make_block(1))
            latency = time.monotonic() - started
            await channel.close()
            await asyncio.wait_for(consumer, timeout=1)
            return latency

        # Allow for coarse timer resolution.
        assert asyncio.run(run()) >= drain_time * 0.9

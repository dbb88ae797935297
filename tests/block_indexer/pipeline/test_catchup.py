"""Tests for the live catch-up reconciler."""

from __future__ import annotations

import asyncio

import pytest

from block_indexer.chain import SourceError
from block_indexer.pipeline import (
    CatchUpReconciler,
    Cursor,
    FixedDelay,
    GapFillError,
    GapFillPolicy,
    HandoffChannel,
    RetryingFetcher,
    StopSignal,
    SubscriptionTransportError,
)
from tests.block_indexer.helpers import FakeSource, make_block, make_notice


def make_reconciler(
    source: FakeSource,
    channel: HandoffChannel,
    *,
    stop: StopSignal | None = None,
    policy: GapFillPolicy = GapFillPolicy.RETRY,
    headers_buffer_size: int = 0,
) -> CatchUpReconciler:
    """Wire a reconciler over a fake source."""
    stop = stop or StopSignal()
    fetcher = RetryingFetcher(source=source, strategy=FixedDelay(0), stop=stop)
    return CatchUpReconciler(
        source=source,
        fetcher=fetcher,
        channel=channel,
        headers_buffer_size=headers_buffer_size,
        gap_fill_policy=policy,
        stop=stop,
    )


async def drain(channel: HandoffChannel) -> list[int]:
    """Close the channel and return the numbers it holds."""
    await channel.close()
    return [record.number async for record in channel]


class TestReconcile:
    """Tests for reconciling one notice."""

    def test_gap_is_filled_by_number_then_notice_by_hash(self) -> None:
        """Cursor at 10, notice for 13: fetch 11 and 12 by number, then 13 by hash."""
        source = FakeSource(head=13, supports_subscription=True)
        channel = HandoffChannel(8)
        cursor = Cursor(last_processed=10)
        notice = make_notice(13)

        async def run() -> list[int]:
            await make_reconciler(source, channel).reconcile(cursor, notice)
            return await drain(channel)

        assert asyncio.run(run()) == [11, 12, 13]
        assert source.calls == [("number", 11), ("number", 12), ("hash", notice.hash)]
        assert cursor.last_processed == 13

    def test_adjacent_notice_needs_no_gap_fill(self) -> None:
        """The next block is fetched by hash only."""
        source = FakeSource(head=11, supports_subscription=True)
        channel = HandoffChannel(8)
        cursor = Cursor(last_processed=10)

        async def run() -> list[int]:
            await make_reconciler(source, channel).reconcile(cursor, make_notice(11))
            return await drain(channel)

        assert asyncio.run(run()) == [11]
        assert source.numbers_fetched() == []

    def test_stale_notice_is_skipped(self) -> None:
        """A notice at or behind the cursor does not move it or fetch anything."""
        source = FakeSource(head=10, supports_subscription=True)
        channel = HandoffChannel(8)
        cursor = Cursor(last_processed=10)

        async def run() -> list[int]:
            reconciler = make_reconciler(source, channel)
            await reconciler.reconcile(cursor, make_notice(10))
            await reconciler.reconcile(cursor, make_notice(7))
            return await drain(channel)

        assert asyncio.run(run()) == []
        assert source.calls == []
        assert cursor.last_processed == 10

    def test_notified_block_is_taken_by_hash(self) -> None:
        """When a competing block shares the number, the notified hash wins."""
        source = FakeSource(head=11, supports_subscription=True)
        fork = make_block(11, fork=1)
        source.add_fork_block(fork)
        channel = HandoffChannel(8)
        cursor = Cursor(last_processed=10)

        async def run() -> list[str]:
            await make_reconciler(source, channel).reconcile(cursor, make_notice(11, fork=1))
            await channel.close()
            return [record.hash async for record in channel]

        assert asyncio.run(run()) == [fork.hash]

    def test_retry_policy_retries_gap_blocks(self) -> None:
        """Under RETRY a failing gap block is retried like a backfill block."""
        source = FakeSource(head=12, supports_subscription=True)
        source.fail_number(11, times=2)
        channel = HandoffChannel(8)
        cursor = Cursor(last_processed=10)

        async def run() -> list[int]:
            await make_reconciler(source, channel).reconcile(cursor, make_notice(12))
            return await drain(channel)

        assert asyncio.run(run()) == [11, 12]

    def test_fail_policy_ends_on_first_gap_failure(self) -> None:
        """Under FAIL a failing gap block raises GapFillError without a retry."""
        source = FakeSource(head=12, supports_subscription=True)
        source.fail_number(11)
        channel = HandoffChannel(8)
        cursor = Cursor(last_processed=10)
        reconciler = make_reconciler(source, channel, policy=GapFillPolicy.FAIL)

        with pytest.raises(GapFillError) as exc_info:
            asyncio.run(reconciler.reconcile(cursor, make_notice(12)))

        assert exc_info.value.number == 11
        assert isinstance(exc_info.value.cause, SourceError)
        assert source.numbers_fetched() == [11]
        assert cursor.last_processed == 10

    def test_fail_policy_on_notified_block(self) -> None:
        """Under FAIL a failing by-hash fetch raises too."""
        source = FakeSource(head=11, supports_subscription=True)
        notice = make_notice(11)
        source.fail_hash(notice.hash)
        reconciler = make_reconciler(source, HandoffChannel(8), policy=GapFillPolicy.FAIL)

        with pytest.raises(GapFillError):
            asyncio.run(reconciler.reconcile(Cursor(last_processed=10), notice))


class TestRun:
    """Tests for the subscription loop."""

    def test_follows_notices_until_stopped(self) -> None:
        """Notices are reconciled in arrival order; stop unsubscribes."""
        source = FakeSource(
            head=15,
            supports_subscription=True,
            notices=[make_notice(12), make_notice(13), make_notice(15)],
        )
        channel = HandoffChannel(16)
        stop = StopSignal()
        cursor = Cursor(last_processed=10)
        reconciler = make_reconciler(source, channel, stop=stop, headers_buffer_size=4)

        async def run() -> list[int]:
            task = asyncio.ensure_future(reconciler.run(cursor))
            while cursor.last_processed < 15:
                await asyncio.sleep(0.01)
            stop.request()
            await asyncio.wait_for(task, timeout=2)
            return await drain(channel)

        assert asyncio.run(run()) == [11, 12, 13, 14, 15]
        assert source.subscription is not None
        assert source.subscription.unsubscribed == 1

    def test_zero_header_buffer_still_delivers(self) -> None:
        """A notice queue of capacity 0 holds one notice at a time."""
        source = FakeSource(head=11, supports_subscription=True)
        channel = HandoffChannel(8)
        stop = StopSignal()
        cursor = Cursor(last_processed=10)

        async def run() -> list[int]:
            task = asyncio.ensure_future(make_reconciler(source, channel, stop=stop).run(cursor))
            await source.subscribed.wait()
            assert source.subscription is not None
            assert source.subscription.notices.maxsize == 1
            await source.subscription.push(make_notice(11))
            while cursor.last_processed < 11:
                await asyncio.sleep(0.01)
            stop.request()
            await asyncio.wait_for(task, timeout=2)
            return await drain(channel)

        assert asyncio.run(run()) == [11]

    def test_subscribe_failure_is_transport_error(self) -> None:
        """Failing to subscribe is fatal."""
        source = FakeSource(head=10, supports_subscription=True)
        source.subscribe_error = SourceError("handshake failed")
        reconciler = make_reconciler(source, HandoffChannel(1))

        with pytest.raises(SubscriptionTransportError, match="subscribe"):
            asyncio.run(reconciler.run(Cursor(last_processed=10)))

    def test_polling_source_cannot_subscribe(self) -> None:
        """A source without push support fails as a transport error."""
        reconciler = make_reconciler(FakeSource(head=10), HandoffChannel(1))

        with pytest.raises(SubscriptionTransportError):
            asyncio.run(reconciler.run(Cursor(last_processed=10)))

    def test_subscription_error_is_fatal(self) -> None:
        """An error on the subscription ends the loop and unsubscribes."""
        source = FakeSource(head=10, supports_subscription=True)
        reconciler = make_reconciler(source, HandoffChannel(1))

        async def run() -> None:
            task = asyncio.ensure_future(reconciler.run(Cursor(last_processed=10)))
            await source.subscribed.wait()
            assert source.subscription is not None
            source.subscription.fail(ConnectionResetError("socket closed"))
            await asyncio.wait_for(task, timeout=2)

        with pytest.raises(SubscriptionTransportError, match="socket closed"):
            asyncio.run(run())
        assert source.subscription is not None
        assert source.subscription.unsubscribed == 1

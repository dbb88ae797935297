"""Tests for the retrying block fetcher."""

from __future__ import annotations

import asyncio
import time

import pytest

from block_indexer import metrics
from block_indexer.pipeline import FixedDelay, RetryingFetcher, StopRequested, StopSignal
from tests.block_indexer.helpers import FakeSource, make_block


class RecordingDelay:
    """Strategy that records the attempts it was asked about."""

    def __init__(self) -> None:
        """Initialize with no attempts."""
        self.attempts: list[int] = []

    def delay(self, attempt: int) -> float:
        """Return no delay, remembering the attempt number."""
        self.attempts.append(attempt)
        return 0.0


class TestFixedDelay:
    """Tests for the default strategy."""

    def test_constant(self) -> None:
        """Every attempt waits the same time."""
        strategy = FixedDelay(2.5)
        assert [strategy.delay(a) for a in (1, 2, 10)] == [2.5, 2.5, 2.5]


class TestRetryingFetcher:
    """Tests for the retry loop."""

    def test_success_on_first_attempt(self) -> None:
        """A healthy source is called once."""
        source = FakeSource(head=3)
        fetcher = RetryingFetcher(source=source, strategy=FixedDelay(0))

        record = asyncio.run(fetcher.fetch_by_number(2))

        assert record == make_block(2)
        assert source.numbers_fetched() == [2]

    def test_k_failures_wait_at_least_k_delays(self) -> None:
        """k consecutive failures delay the result by at least k retry delays."""
        source = FakeSource(head=3)
        source.fail_number(1, times=3)
        fetcher = RetryingFetcher(source=source, strategy=FixedDelay(0.03))

        async def run() -> float:
            started = time.monotonic()
            await fetcher.fetch_by_number(1)
            return time.monotonic() - started

        elapsed = asyncio.run(run())

        assert elapsed >= 3 * 0.03 * 0.9
        assert source.numbers_fetched() == [1, 1, 1, 1]

    def test_attempts_are_numbered_from_one(self) -> None:
        """The strategy sees 1, 2, ... for successive failures."""
        source = FakeSource(head=0)
        source.fail_hash(make_block(0).hash, times=2)
        strategy = RecordingDelay()
        fetcher = RetryingFetcher(source=source, strategy=strategy)

        asyncio.run(fetcher.fetch_by_hash(make_block(0).hash))

        assert strategy.attempts == [1, 2]

    def test_failures_are_counted(self) -> None:
        """Each failed attempt increments the failure counter."""
        source = FakeSource(head=0)
        source.fail_number(0, times=2)
        fetcher = RetryingFetcher(source=source, strategy=FixedDelay(0))
        before = metrics.fetch_failures._value.get()

        asyncio.run(fetcher.fetch_by_number(0))

        assert metrics.fetch_failures._value.get() == before + 2

    def test_missing_block_is_retried_until_it_appears(self) -> None:
        """A block the source does not have yet is treated as transient."""
        source = FakeSource(head=0)
        fetcher = RetryingFetcher(source=source, strategy=FixedDelay(0.01))

        async def run() -> int:
            asyncio.get_running_loop().call_later(0.05, source.extend, 1)
            record = await asyncio.wait_for(fetcher.fetch_by_number(1), timeout=2)
            return record.number

        assert asyncio.run(run()) == 1

    def test_stop_interrupts_retry_sleep(self) -> None:
        """A stop request ends the unbounded retry loop."""
        source = FakeSource(head=0)
        stop = StopSignal()
        fetcher = RetryingFetcher(source=source, strategy=FixedDelay(30), stop=stop)

        async def run() -> None:
            asyncio.get_running_loop().call_later(0.02, stop.request)
            await asyncio.wait_for(fetcher.fetch_by_number(5), timeout=2)

        with pytest.raises(StopRequested):
            asyncio.run(run())

    def test_cancellation_interrupts_retry_sleep(self) -> None:
        """Cancelling the task ends the retry loop at once."""
        source = FakeSource(head=0)
        fetcher = RetryingFetcher(source=source, strategy=FixedDelay(30))

        async def run() -> bool:
            task = asyncio.ensure_future(fetcher.fetch_by_number(5))
            await asyncio.sleep(0.02)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                return True
            return False

        assert asyncio.run(run()) is True

    def test_head_read_is_retried(self) -> None:
        """Transient head failures are retried like block lookups."""
        source = FakeSource(head=12)
        source.fail_head(3)
        strategy = RecordingDelay()
        fetcher = RetryingFetcher(source=source, strategy=strategy)

        assert asyncio.run(fetcher.current_head()) == 12
        assert strategy.attempts == [1, 2, 3]
        assert metrics.source_head_block._value.get() == 12

    def test_head_read_does_not_count_as_block_fetch(self) -> None:
        """Only block lookups move the fetched-blocks counter."""
        fetched = metrics.blocks_fetched._value.get()
        fetcher = RetryingFetcher(source=FakeSource(head=4), strategy=FixedDelay(0.0))

        asyncio.run(fetcher.current_head())
        assert metrics.blocks_fetched._value.get() == fetched

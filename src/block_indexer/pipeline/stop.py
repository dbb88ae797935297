"""Graceful stop signal shared by the pipeline stages."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field


@dataclass(slots=True)
class StopSignal:
    """
    One-shot request to wind the pipeline down.

    Cancellation interrupts any await immediately. A stop request instead
    lets the producer finish the block in hand, then unwinds at the next
    suspension point: a retry or readiness sleep, a notice wait, or the next
    loop iteration.
    """

    _event: asyncio.Event = field(default_factory=asyncio.Event)
    """Set once a stop has been requested."""

    @property
    def requested(self) -> bool:
        """Whether a stop has been requested."""
        return self._event.is_set()

    def request(self) -> None:
        """Request a stop. Idempotent."""
        self._event.set()

    async def wait(self) -> None:
        """Block until a stop is requested."""
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """
        Sleep for `delay` seconds, waking early on a stop request.

        Returns:
            True if the sleep was cut short by a stop request.
        """
        if self.requested:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True

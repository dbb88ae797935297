"""
API server for indexer status and metrics endpoints.

Provides HTTP endpoints for:
- /indexer/v0/health - Health check endpoint
- /indexer/v0/status - Pipeline progress as JSON
- /metrics - Prometheus metrics endpoint
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from aiohttp import web

from block_indexer.metrics import generate_metrics

if TYPE_CHECKING:
    from block_indexer.pipeline import PipelineProgress

logger = logging.getLogger(__name__)

SERVICE_NAME = "block-indexer-api"
"""Fixed service identifier returned by the health endpoint."""


def _no_progress() -> PipelineProgress | None:
    """Default progress getter that returns None."""
    return None


def progress_to_json(progress: PipelineProgress) -> dict[str, Any]:
    """Render a progress snapshot as a JSON-compatible dict."""
    return {
        "state": progress.state.name.lower(),
        "mode": progress.mode.value if progress.mode is not None else None,
        "start": progress.start,
        "end": progress.end,
        "lastProcessed": progress.last_processed,
        "blocksProduced": progress.blocks_produced,
        "blocksSaved": progress.blocks_saved,
        "sinkFailures": progress.sink_failures,
        "pending": progress.pending,
    }


async def _handle_health(_request: web.Request) -> web.Response:
    """Handle health check endpoint."""
    return web.json_response({"status": "healthy", "service": SERVICE_NAME})


async def _handle_metrics(_request: web.Request) -> web.Response:
    """Handle Prometheus metrics endpoint."""
    return web.Response(
        body=generate_metrics(),
        content_type="text/plain",
        charset="utf-8",
        headers={"X-Content-Type-Options": "nosniff"},
    )


@dataclass(frozen=True, slots=True)
class ApiServerConfig:
    """Configuration for the API server."""

    host: str = "0.0.0.0"
    """Host address to bind to."""

    port: int = 5053
    """Port to listen on."""

    enabled: bool = True
    """Whether the API server is enabled."""


@dataclass(slots=True)
class ApiServer:
    """
    Status server for a running indexer.

    Routes:
    - /indexer/v0/health: liveness, independent of the pipeline
    - /indexer/v0/status: cursor and counters, 503 until a pipeline exists
    - /metrics: Prometheus text exposition
    """

    config: ApiServerConfig
    """Server configuration."""

    progress_getter: Callable[[], PipelineProgress | None] = _no_progress
    """Returns the current pipeline progress, or None before the pipeline exists."""

    _runner: web.AppRunner | None = field(default=None, init=False)
    """Application runner while the port is bound."""

    _stopped: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    """Set by stop()."""

    _serving: bool = field(default=False, init=False)
    """Whether run() is waiting and will release the port itself."""

    _cleanup_task: asyncio.Task[None] | None = field(default=None, init=False)
    """Pending cleanup when stop() is called without run()."""

    @property
    def progress(self) -> PipelineProgress | None:
        """Current pipeline progress."""
        return self.progress_getter()

    @property
    def listening(self) -> bool:
        """Whether the port is currently bound."""
        return self._runner is not None

    async def start(self) -> None:
        """Bind the port. Does nothing if disabled or already listening."""
        if not self.config.enabled:
            logger.info("API server is disabled")
            return
        if self._runner is not None:
            return

        app = web.Application()
        app.add_routes(
            [
                web.get("/indexer/v0/health", _handle_health),
                web.get("/indexer/v0/status", self._handle_status),
                web.get("/metrics", _handle_metrics),
            ]
        )

        runner = web.AppRunner(app)
        await runner.setup()
        try:
            await web.TCPSite(runner, self.config.host, self.config.port).start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner

        logger.info("API server listening on %s:%d", self.config.host, self.config.port)

    async def run(self) -> None:
        """Serve until stop() is called, then release the port."""
        await self.start()
        if self._runner is None:
            return

        self._serving = True
        try:
            await self._stopped.wait()
        finally:
            self._serving = False
            await self._cleanup()

    def stop(self) -> None:
        """Request shutdown. Safe to call more than once."""
        self._stopped.set()
        # Without a waiting run() nothing else releases the port.
        if self._runner is not None and not self._serving and self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup())

    async def _cleanup(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()
            logger.info("API server stopped")

    async def _handle_status(self, _request: web.Request) -> web.Response:
        """
        Report pipeline progress.

        Keys are camelCase, e.g.
        {"state": "backfilling", "mode": "polling", "lastProcessed": 1234, ...}
        """
        progress = self.progress
        if progress is None:
            raise web.HTTPServiceUnavailable(reason="Pipeline not initialized")
        return web.json_response(progress_to_json(progress))

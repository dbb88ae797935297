"""
Indexer process orchestrator.

Wires together the source, the sink, the pipeline, and the optional status
API, and runs them with structured concurrency.

The node owns the lifecycle of every resource it opens: the source
connection and the sink are closed on the way out, whether the pipeline
finished its range, was stopped by a signal, or failed.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from block_indexer.api import ApiServer, ApiServerConfig
from block_indexer.chain import LedgerSource, open_source
from block_indexer.chain.rpc import DEFAULT_TIMEOUT
from block_indexer.config import IndexerSettings
from block_indexer.pipeline import Pipeline, PipelineConfig
from block_indexer.storage import BlockSink, FileSink, SQLiteSink

logger = logging.getLogger(__name__)


def open_sink(kind: Literal["file", "sqlite"], path: Path) -> BlockSink:
    """
    Open the sink named by `kind` at `path`.

    Raises:
        ValueError: If the kind is unknown.
        OSError: If the path cannot be opened.
    """
    if kind == "file":
        return FileSink(path)
    if kind == "sqlite":
        return SQLiteSink(path)
    raise ValueError(f"Unknown sink: {kind!r}")


@dataclass(frozen=True, slots=True)
class NodeConfig:
    """
    Configuration for an indexer process.

    Provides all parameters needed to open the source and sink and run
    the pipeline.
    """

    rpc: str
    """Node endpoint URL."""

    pipeline: PipelineConfig
    """Validated pipeline settings."""

    out: Path = Path("blocks.log")
    """Sink output path."""

    sink: Literal["file", "sqlite"] = "file"
    """Sink implementation."""

    api_config: ApiServerConfig | None = field(default=None)
    """Status API settings. None disables the API."""

    request_timeout: float = DEFAULT_TIMEOUT
    """Per-request timeout for the source, in seconds."""

    @classmethod
    def from_settings(cls, settings: IndexerSettings) -> NodeConfig:
        """
        Build a node config from layered settings.

        Raises:
            ValueError: If no endpoint is configured.
            pydantic.ValidationError: On conflicting pipeline settings.
        """
        if not settings.rpc:
            raise ValueError("No RPC endpoint configured (use --rpc, INDEXER_RPC, or config.yaml)")
        api_config = (
            ApiServerConfig(port=settings.api_port) if settings.api_port is not None else None
        )
        return cls(
            rpc=settings.rpc,
            pipeline=settings.to_pipeline_config(),
            out=settings.out,
            sink=settings.sink,
            api_config=api_config,
        )


@dataclass(slots=True)
class IndexerNode:
    """
    Indexer process orchestrator.

    Runs the pipeline and the optional API server concurrently.
    """

    source: LedgerSource
    """Ledger data source."""

    sink: BlockSink
    """Persistence sink."""

    pipeline: Pipeline
    """The ingestion pipeline."""

    api_server: ApiServer | None = field(default=None)
    """Optional status API server."""

    _shutdown: asyncio.Event = field(default_factory=asyncio.Event)
    """Event signaling shutdown request."""

    _failure: Exception | None = field(default=None)
    """Pipeline error, re-raised after every task has exited."""

    @classmethod
    def from_config(cls, config: NodeConfig) -> IndexerNode:
        """
        Open the source and sink and wire the pipeline.

        Raises:
            ValueError: If the endpoint scheme is unsupported.
            OSError: If the sink cannot be opened.
        """
        sink = open_sink(config.sink, config.out)
        try:
            source = open_source(config.rpc, timeout=config.request_timeout)
        except Exception:
            sink.close()
            raise

        pipeline = Pipeline(source=source, sink=sink, config=config.pipeline)

        api_server = None
        if config.api_config is not None:
            api_server = ApiServer(
                config=config.api_config, progress_getter=lambda: pipeline.progress
            )

        logger.info("Indexing from %s into %s (%s sink)", config.rpc, config.out, config.sink)
        return cls(source=source, sink=sink, pipeline=pipeline, api_server=api_server)

    async def run(self, *, install_signal_handlers: bool = True) -> None:
        """
        Run until the pipeline finishes, a shutdown is requested, or it fails.

        Args:
            install_signal_handlers: Whether to handle SIGINT/SIGTERM.
                Disable for testing or non-main threads.

        Raises:
            Exception: The pipeline's fatal error, after cleanup.
        """
        if install_signal_handlers:
            self._install_signal_handlers()

        if self.api_server is not None:
            await self.api_server.start()

        # The pipeline task sets the shutdown event when it returns, so a
        # finished range brings the API server down too.
        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._run_pipeline())
                if self.api_server is not None:
                    tg.create_task(self.api_server.run())
                tg.create_task(self._wait_shutdown())
        finally:
            await self.source.close()
            self.sink.close()

        if self._failure is not None:
            raise self._failure

    async def _run_pipeline(self) -> None:
        try:
            await self.pipeline.run()
        except Exception as e:
            self._failure = e
        finally:
            self._shutdown.set()

    def _install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to stop(), where the loop allows it."""
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.stop)
        except (ValueError, RuntimeError, NotImplementedError):
            # Not the main thread, or no signal support on this platform.
            logger.debug("Signal handlers not installed")

    async def _wait_shutdown(self) -> None:
        """Wait for shutdown, then stop the pipeline and the API."""
        await self._shutdown.wait()

        # The pipeline finishes its current block and drains the channel.
        self.pipeline.stop()
        if self.api_server is not None:
            self.api_server.stop()

    def stop(self) -> None:
        """Ask the node to wind down. Returns immediately."""
        if not self._shutdown.is_set():
            logger.info("Shutdown requested")
        self._shutdown.set()

    @property
    def is_running(self) -> bool:
        """False once the pipeline has returned or a stop was requested."""
        return not self._shutdown.is_set()

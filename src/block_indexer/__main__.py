"""
Block indexer CLI entry point.

Copies blocks from a JSON-RPC node into a local sink, in order and without
gaps, then optionally keeps following the chain head.

Usage::

    indexer run --rpc http://localhost:8545 --start 0 --end 1000
    indexer run --rpc wss://node.example/ws --start 19000000
    indexer run --rpc wss://node.example/ws --live --sink sqlite --out blocks.db
    python -m block_indexer run --config ./config.yaml --api-port 5053

Options for ``run``:
    --rpc                 Node endpoint (http/https polls, ws/wss subscribes)
    --start               First block to index (default: 0)
    --end                 Last block of the historical range (default: unbounded)
    --live                Start from the current head
    --allow-future-start  Wait for a start block the node has not produced yet
    --out                 Output path (default: blocks.log)
    --sink                Sink implementation: file or sqlite (default: file)
    --config              Path to a YAML settings file (default: ./config.yaml)
    --api-port            Serve health, status, and metrics on this port

Environment variables INDEXER_RPC, INDEXER_RETRY_INTERVAL,
INDEXER_BLOCK_BUFFER_SIZE, INDEXER_HEADERS_BUFFER_SIZE, and INDEXER_OUT
override the settings file. Flags override both.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

import yaml
from pydantic import ValidationError

from block_indexer.chain import SourceError
from block_indexer.config import IndexerSettings
from block_indexer.node import IndexerNode, NodeConfig
from block_indexer.pipeline import PipelineError

logger = logging.getLogger(__name__)


class ColoredFormatter(logging.Formatter):
    """Logging formatter with ANSI colors for better readability."""

    # ANSI color codes
    GREY = "\x1b[38;5;244m"
    BLUE = "\x1b[38;5;39m"
    GREEN = "\x1b[38;5;40m"
    YELLOW = "\x1b[38;5;220m"
    RED = "\x1b[38;5;196m"
    BOLD_RED = "\x1b[38;5;196;1m"
    CYAN = "\x1b[38;5;51m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        timestamp = f"{self.CYAN}{self.formatTime(record, self.datefmt)}{self.RESET}"
        levelname = f"{color}{record.levelname:8}{self.RESET}"
        name = f"{self.BLUE}{record.name}{self.RESET}"
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"{timestamp} {levelname} {name}: {message}"


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Configure root logging for the indexer, with optional colors."""
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)

    if no_color:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = ColoredFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    # Per-request client logs drown out block progress at INFO.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its `run` subcommand."""
    parser = argparse.ArgumentParser(
        prog="indexer",
        description="Sequential block indexer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-color", action="store_true", help="Disable colored logging output")

    commands = parser.add_subparsers(dest="command", required=True)
    run = commands.add_parser("run", help="Index blocks from a node into a sink")
    run.add_argument("--rpc", type=str, default=None, help="Node endpoint URL")
    run.add_argument("--start", type=int, default=None, help="First block to index (default: 0)")
    run.add_argument(
        "--end",
        type=int,
        default=None,
        help="Last block of the historical range, inclusive (default: unbounded)",
    )
    run.add_argument(
        "--live",
        action="store_true",
        default=None,
        help="Start from the current head",
    )
    run.add_argument(
        "--allow-future-start",
        action="store_true",
        default=None,
        help="Wait for the node to reach the start block instead of failing",
    )
    run.add_argument("--out", type=Path, default=None, help="Output path (default: blocks.log)")
    run.add_argument(
        "--sink",
        choices=["file", "sqlite"],
        default=None,
        help="Sink implementation (default: file)",
    )
    run.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML settings file (default: ./config.yaml if present)",
    )
    run.add_argument(
        "--api-port",
        type=int,
        default=None,
        help="Serve health, status, and metrics on this port",
    )
    return parser


def load_node_config(args: argparse.Namespace) -> NodeConfig:
    """
    Resolve layered settings into a node configuration.

    Raises:
        FileNotFoundError: If an explicit config file is missing.
        yaml.YAMLError: If the config file is malformed.
        pydantic.ValidationError: On invalid or conflicting values.
        ValueError: If no endpoint is configured.
    """
    settings = IndexerSettings.load(
        args.config,
        overrides={
            "rpc": args.rpc,
            "start": args.start,
            "end": args.end,
            "live": args.live,
            "allow_future_start": args.allow_future_start,
            "out": args.out,
            "sink": args.sink,
            "api_port": args.api_port,
        },
    )
    return NodeConfig.from_settings(settings)


async def run_indexer(config: NodeConfig) -> None:
    """Open everything, run the node, and close everything."""
    node = IndexerNode.from_config(config)
    logger.info("Starting indexer...")
    await node.run()


def main(argv: Sequence[str] | None = None) -> int:
    """
    CLI entry point.

    Returns:
        Process exit status: 0 on a clean finish or stop, 1 on a
        configuration error or a fatal pipeline error.
    """
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose, args.no_color)

    try:
        config = load_node_config(args)
    except (OSError, ValueError, yaml.YAMLError) as e:
        # pydantic.ValidationError is a ValueError.
        if isinstance(e, ValidationError):
            logger.error("Invalid configuration:\n%s", e)
        else:
            logger.error("Invalid configuration: %s", e)
        return 1

    try:
        asyncio.run(run_indexer(config))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except (PipelineError, SourceError, OSError, ValueError) as e:
        logger.error("Indexer failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Process orchestrator for the block indexer."""

from .node import IndexerNode, NodeConfig, open_sink

__all__ = ["IndexerNode", "NodeConfig", "open_sink"]

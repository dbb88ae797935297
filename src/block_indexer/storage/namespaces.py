"""
Table layout for the SQLite sink.

One namespace per table, holding its name and DDL.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BlockNamespace:
    """
    The blocks table.

    Blocks are keyed by number. At-least-once delivery means the same number
    can arrive twice; the later write wins.
    """

    TABLE_NAME: str = "blocks"
    """Table name."""

    CREATE_TABLE: str = """
        CREATE TABLE IF NOT EXISTS blocks (
            number INTEGER PRIMARY KEY,
            hash TEXT NOT NULL,
            parent_hash TEXT NOT NULL,
            timestamp INTEGER NOT NULL,
            tx_count INTEGER NOT NULL,
            nonce TEXT NOT NULL,
            miner TEXT NOT NULL,
            gas_used INTEGER NOT NULL,
            gas_limit INTEGER NOT NULL,
            size INTEGER NOT NULL,
            extra_data BLOB NOT NULL,
            difficulty TEXT NOT NULL,
            receipts_root TEXT NOT NULL
        )
    """
    """DDL for the table; one column per record field."""

    CREATE_INDEX: str = """
        CREATE INDEX IF NOT EXISTS idx_blocks_hash ON blocks(hash)
    """
    """SQL to create hash index."""


# Shared instances
BLOCKS = BlockNamespace()

ALL_NAMESPACES = [BLOCKS]
"""Namespaces created when a database is opened."""

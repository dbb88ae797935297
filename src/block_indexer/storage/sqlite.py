"""
SQLite sink for indexed blocks.

Stores one row per block number in a single SQLite file:

- Plain columns for every record field, so the data is queryable with SQL
- A hash index for lookups by block hash
- nonce and difficulty as decimal text, since both can exceed SQLite's
  signed 64-bit integers
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from block_indexer.chain import BlockRecord

from .namespaces import ALL_NAMESPACES, BLOCKS

_COLUMNS = (
    "number",
    "hash",
    "parent_hash",
    "timestamp",
    "tx_count",
    "nonce",
    "miner",
    "gas_used",
    "gas_limit",
    "size",
    "extra_data",
    "difficulty",
    "receipts_root",
)
"""Block table columns, in insertion order."""


class SQLiteSink:
    """
    SQLite implementation of the BlockSink protocol.

    The drain calls `save` from a worker thread, so the connection is shared
    across threads and writes are serialized by a lock.
    """

    def __init__(self, path: Path | str) -> None:
        """
        Initialize SQLite sink.

        Creates database file and tables if they don't exist.

        Args:
            path: Path to SQLite database file.
                  Use ":memory:" for in-memory database.
        """
        self._path = Path(path) if isinstance(path, str) else path

        # check_same_thread=False lets the drain's worker threads use this
        # connection. The lock serializes them.
        self._conn = sqlite3.connect(
            str(self._path),
            check_same_thread=False,
        )

        # Row factory enables dict-like access: row["column_name"].
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()

        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        cursor = self._conn.cursor()
        for namespace in ALL_NAMESPACES:
            cursor.execute(namespace.CREATE_TABLE)
            cursor.execute(namespace.CREATE_INDEX)
        self._conn.commit()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def save(self, record: BlockRecord) -> None:
        """Store a block, replacing any earlier row with the same number."""
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._lock:
            # INSERT OR REPLACE makes replays after a restart idempotent.
            self._conn.execute(
                f"""
                INSERT OR REPLACE INTO {BLOCKS.TABLE_NAME} ({", ".join(_COLUMNS)})
                VALUES ({placeholders})
                """,
                (
                    record.number,
                    record.hash,
                    record.parent_hash,
                    record.timestamp,
                    record.tx_count,
                    str(record.nonce),
                    record.miner,
                    record.gas_used,
                    record.gas_limit,
                    record.size,
                    record.extra_data,
                    str(record.difficulty),
                    record.receipts_root,
                ),
            )

            # Commit per block: the cursor moves on as soon as save returns.
            self._conn.commit()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_block(self, number: int) -> BlockRecord | None:
        """Retrieve a block by number."""
        return self._fetch_one(f"SELECT * FROM {BLOCKS.TABLE_NAME} WHERE number = ?", number)

    def get_block_by_hash(self, block_hash: str) -> BlockRecord | None:
        """Retrieve a block by hash."""
        return self._fetch_one(f"SELECT * FROM {BLOCKS.TABLE_NAME} WHERE hash = ?", block_hash)

    def latest_number(self) -> int | None:
        """Highest stored block number, or None if empty."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT MAX(number) AS number FROM {BLOCKS.TABLE_NAME}"
            ).fetchone()
        return None if row["number"] is None else int(row["number"])

    def count(self) -> int:
        """Number of stored blocks."""
        with self._lock:
            row = self._conn.execute(f"SELECT COUNT(*) AS n FROM {BLOCKS.TABLE_NAME}").fetchone()
        return int(row["n"])

    def _fetch_one(self, query: str, key: int | str) -> BlockRecord | None:
        with self._lock:
            row = self._conn.execute(query, (key,)).fetchone()
        if row is None:
            return None
        return BlockRecord(
            number=row["number"],
            hash=row["hash"],
            parent_hash=row["parent_hash"],
            timestamp=row["timestamp"],
            tx_count=row["tx_count"],
            nonce=int(row["nonce"]),
            miner=row["miner"],
            gas_used=row["gas_used"],
            gas_limit=row["gas_limit"],
            size=row["size"],
            extra_data=bytes(row["extra_data"]),
            difficulty=int(row["difficulty"]),
            receipts_root=row["receipts_root"],
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> SQLiteSink:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

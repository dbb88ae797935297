"""
Plain-text file sink.

Appends one human-readable block per record, separated by a blank line:

    Number: 18000000
    Hash: 0x95b1...
    TxCount: 150
    ...
    ReceiptsRoot: 0x4f3a...

The file is opened in append mode so consecutive runs extend the same log.
"""

from __future__ import annotations

import threading
from pathlib import Path

from block_indexer.chain import BlockRecord


def format_block(record: BlockRecord) -> str:
    """Render a record in the sink's text layout, including the trailing blank line."""
    return (
        f"Number: {record.number}\n"
        f"Hash: {record.hash}\n"
        f"TxCount: {record.tx_count}\n"
        f"Timestamp: {record.timestamp}\n"
        f"ParentHash: {record.parent_hash}\n"
        f"Nonce: {record.nonce}\n"
        f"Miner: {record.miner}\n"
        f"GasUsed: {record.gas_used}\n"
        f"GasLimit: {record.gas_limit}\n"
        f"Size: {record.size}\n"
        f"ExtraData: {record.extra_data.hex()}\n"
        f"Difficulty: {record.difficulty}\n"
        f"ReceiptsRoot: {record.receipts_root}\n"
        "\n"
    )


class FileSink:
    """
    Append-only text file implementation of the BlockSink protocol.

    Each save is flushed before returning.
    """

    def __init__(self, path: Path | str) -> None:
        """
        Open (or create) the output file for appending.

        Args:
            path: Destination file.
        """
        self._path = Path(path)
        self._file = self._path.open("a", encoding="utf-8")
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Destination file."""
        return self._path

    def save(self, record: BlockRecord) -> None:
        """Append one block and flush."""
        with self._lock:
            self._file.write(format_block(record))
            self._file.flush()

    def close(self) -> None:
        """Close the file. Safe to call more than once."""
        with self._lock:
            if not self._file.closed:
                self._file.close()

"""Record builders with deterministic field values."""

from __future__ import annotations

from typing import Any

from block_indexer.chain import BlockHeaderNotice, BlockRecord

GENESIS_TIMESTAMP = 1_700_000_000


def block_hash(number: int, fork: int = 0) -> str:
    """Deterministic 32-byte hash for a block height (and fork variant)."""
    return f"0x{fork:02x}{number:062x}"


def make_block(number: int, *, fork: int = 0, tx_count: int | None = None) -> BlockRecord:
    """Build a block record whose fields are derived from its number."""
    txs = number % 7 if tx_count is None else tx_count
    return BlockRecord(
        number=number,
        hash=block_hash(number, fork),
        parent_hash=block_hash(number - 1) if number > 0 else "0x" + "00" * 32,
        timestamp=GENESIS_TIMESTAMP + 12 * number,
        tx_count=txs,
        nonce=0,
        miner="0x" + "ab" * 20,
        gas_used=21_000 * txs,
        gas_limit=30_000_000,
        size=540 + 100 * txs,
        extra_data=b"",
        difficulty=0,
        receipts_root="0x" + "56" * 32,
    )


def make_notice(number: int, *, fork: int = 0) -> BlockHeaderNotice:
    """Build the new-head notice announcing `make_block(number, fork=fork)`."""
    return BlockHeaderNotice(hash=block_hash(number, fork), number=number)


def block_payload(number: int, *, fork: int = 0, tx_count: int | None = None) -> dict[str, Any]:
    """JSON-RPC block object (hashes-only transactions) matching `make_block`."""
    block = make_block(number, fork=fork, tx_count=tx_count)
    return {
        "number": hex(block.number),
        "hash": block.hash,
        "parentHash": block.parent_hash,
        "timestamp": hex(block.timestamp),
        "transactions": [f"0x{i:064x}" for i in range(block.tx_count)],
        "nonce": "0x0000000000000000",
        "miner": block.miner,
        "gasUsed": hex(block.gas_used),
        "gasLimit": hex(block.gas_limit),
        "size": hex(block.size),
        "extraData": "0x",
        "difficulty": "0x0",
        "receiptsRoot": block.receipts_root,
        "stateRoot": "0x" + "12" * 32,
        "baseFeePerGas": "0x7",
    }

"""
Records produced by a ledger data source.

Two shapes travel through the indexer:

- BlockRecord: a full snapshot of one block, persisted by the sink
- BlockHeaderNotice: a lightweight (hash, number) pair pushed by a live
  subscription, used only to trigger a full fetch by hash

Both are immutable once created.
"""

from __future__ import annotations

from pydantic import Field

from block_indexer.types import StrictBaseModel


class BlockRecord(StrictBaseModel):
    """
    Immutable snapshot of one ledger block.

    Created by the source lookup, consumed exactly once by the persistence
    drain. Numeric fields are plain Python integers; hashes and addresses are
    0x-prefixed hex strings as returned by the node.
    """

    number: int = Field(ge=0)
    """Block height. Monotonic along the canonical chain."""

    hash: str
    """Block hash."""

    parent_hash: str
    """Hash of the parent block."""

    timestamp: int = Field(ge=0)
    """Unix timestamp at which the block was produced."""

    tx_count: int = Field(ge=0)
    """Number of transactions included in the block."""

    nonce: int = Field(default=0, ge=0)
    """Proof-of-work nonce. Zero on proof-of-stake chains."""

    miner: str
    """Address of the block producer (coinbase)."""

    gas_used: int = Field(ge=0)
    """Total gas consumed by the block's transactions."""

    gas_limit: int = Field(ge=0)
    """Gas ceiling for the block."""

    size: int = Field(ge=0)
    """Encoded block size in bytes."""

    extra_data: bytes = b""
    """Producer-supplied auxiliary payload."""

    difficulty: int = Field(default=0, ge=0)
    """Mining difficulty at the time the block was created."""

    receipts_root: str
    """Root of the transaction receipts trie."""


class BlockHeaderNotice(StrictBaseModel):
    """
    New-head notification delivered by a live subscription.

    Ephemeral: never persisted itself. The reconciler fetches the full block
    by `hash` because a competing block may share the same number.
    """

    hash: str
    """Hash of the newly announced block."""

    number: int = Field(ge=0)
    """Height of the newly announced block."""

"""
JSON-RPC value codec for Ethereum-compatible nodes.

Ethereum JSON-RPC encodes integers as "quantities" (0x-prefixed hex without
leading zeros) and byte strings as "data" (0x-prefixed, two hex digits per
byte). This module converts between those encodings and the indexer's
records.
"""

from __future__ import annotations

from typing import Any

from .records import BlockHeaderNotice, BlockRecord


def encode_quantity(value: int) -> str:
    """
    Encode a non-negative integer as a JSON-RPC quantity.

    Raises:
        ValueError: If the value is negative.
    """
    if value < 0:
        raise ValueError(f"quantity must be non-negative, got {value}")
    return hex(value)


def decode_quantity(value: str | int | None) -> int:
    """
    Decode a JSON-RPC quantity.

    Some nodes omit optional quantities (nonce and difficulty after the
    merge). Missing values decode to zero.

    Raises:
        ValueError: If the string is not 0x-prefixed hex.
    """
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    if not value.startswith(("0x", "0X")):
        raise ValueError(f"quantity must be 0x-prefixed, got {value!r}")
    return int(value, 16) if len(value) > 2 else 0


def decode_data(value: str | None) -> bytes:
    """Decode a JSON-RPC data string into bytes. Missing values decode to b""."""
    if not value:
        return b""
    if not value.startswith(("0x", "0X")):
        raise ValueError(f"data must be 0x-prefixed, got {value!r}")
    return bytes.fromhex(value[2:])


def decode_block(payload: dict[str, Any]) -> BlockRecord:
    """
    Map an `eth_getBlockByNumber` / `eth_getBlockByHash` result to a record.

    Blocks are requested without full transaction objects, so `transactions`
    is a list of hashes and only its length is kept.

    Raises:
        KeyError: If a mandatory field is missing.
        ValueError: If a field is not valid hex.
    """
    return BlockRecord(
        number=decode_quantity(payload["number"]),
        hash=payload["hash"],
        parent_hash=payload["parentHash"],
        timestamp=decode_quantity(payload["timestamp"]),
        tx_count=len(payload.get("transactions") or []),
        nonce=decode_quantity(payload.get("nonce")),
        miner=payload["miner"],
        gas_used=decode_quantity(payload["gasUsed"]),
        gas_limit=decode_quantity(payload["gasLimit"]),
        size=decode_quantity(payload.get("size")),
        extra_data=decode_data(payload.get("extraData")),
        difficulty=decode_quantity(payload.get("difficulty")),
        receipts_root=payload["receiptsRoot"],
    )


def decode_header(payload: dict[str, Any]) -> BlockHeaderNotice:
    """Map a `newHeads` subscription result to a notice."""
    return BlockHeaderNotice(
        hash=payload["hash"],
        number=decode_quantity(payload["number"]),
    )

"""Tests for the JSON-RPC value codec."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from block_indexer.chain import (
    decode_block,
    decode_data,
    decode_header,
    decode_quantity,
    encode_quantity,
)
from tests.block_indexer.helpers import block_payload, make_block, make_notice


class TestQuantities:
    """Tests for quantity encoding."""

    @pytest.mark.parametrize(
        "value,encoded",
        [(0, "0x0"), (1, "0x1"), (255, "0xff"), (19_000_000, "0x121eac0")],
    )
    def test_encode(self, value: int, encoded: str) -> None:
        """Quantities are compact lowercase hex."""
        assert encode_quantity(value) == encoded

    def test_encode_negative(self) -> None:
        """Negative numbers have no quantity encoding."""
        with pytest.raises(ValueError):
            encode_quantity(-1)

    @given(st.integers(min_value=0, max_value=2**256 - 1))
    def test_decode_inverts_encode(self, value: int) -> None:
        """Decoding an encoded quantity returns the original integer."""
        assert decode_quantity(encode_quantity(value)) == value

    @pytest.mark.parametrize(
        "raw,expected",
        [(None, 0), ("0x", 0), ("0x00ff", 255), ("0XA", 10), (42, 42)],
    )
    def test_decode_lenient_forms(self, raw: str | int | None, expected: int) -> None:
        """Missing, empty, padded, and already-decoded values are accepted."""
        assert decode_quantity(raw) == expected

    @pytest.mark.parametrize("raw", ["12", "0xzz", ""])
    def test_decode_invalid(self, raw: str) -> None:
        """Unprefixed or non-hex strings are rejected."""
        with pytest.raises(ValueError):
            decode_quantity(raw)


class TestData:
    """Tests for data decoding."""

    def test_decode(self) -> None:
        """Data strings decode two hex digits per byte."""
        assert decode_data("0xdeadbeef") == b"\xde\xad\xbe\xef"

    @pytest.mark.parametrize("raw", [None, "", "0x"])
    def test_empty(self, raw: str | None) -> None:
        """Missing and empty data decode to b''."""
        assert decode_data(raw) == b""

    def test_unprefixed(self) -> None:
        """Data must carry the 0x prefix."""
        with pytest.raises(ValueError):
            decode_data("dead")


class TestBlocks:
    """Tests for block and header decoding."""

    def test_decode_block(self) -> None:
        """A node block object maps onto the record, counting transactions."""
        record = decode_block(block_payload(12, tx_count=3))

        assert record == make_block(12, tx_count=3)
        assert record.tx_count == 3

    def test_decode_block_without_optional_fields(self) -> None:
        """Post-merge blocks may omit nonce, difficulty, size, and extra data."""
        payload = block_payload(5)
        for key in ("nonce", "difficulty", "size", "extraData", "transactions"):
            del payload[key]

        record = decode_block(payload)

        assert record.nonce == 0
        assert record.difficulty == 0
        assert record.size == 0
        assert record.extra_data == b""
        assert record.tx_count == 0

    def test_decode_block_missing_mandatory_field(self) -> None:
        """A block without a hash is rejected."""
        payload = block_payload(5)
        del payload["hash"]

        with pytest.raises(KeyError):
            decode_block(payload)

    def test_decode_block_extra_data(self) -> None:
        """Extra data is kept as raw bytes."""
        payload = block_payload(5)
        payload["extraData"] = "0x6765746820"

        assert decode_block(payload).extra_data == b"geth "

    def test_decode_block_rejects_non_string_hash(self) -> None:
        """Records are strict about field types."""
        payload = block_payload(5)
        payload["hash"] = 1234

        with pytest.raises(ValidationError):
            decode_block(payload)

    def test_decode_header(self) -> None:
        """A newHeads result becomes a (hash, number) notice."""
        payload = block_payload(77)

        assert decode_header(payload) == make_notice(77)

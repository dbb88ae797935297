"""Shared test utilities for the block indexer tests."""

from .builders import block_payload, make_block, make_notice
from .fakes import FakeSource, FakeSubscription, RecordingSink

__all__ = [
    "FakeSource",
    "FakeSubscription",
    "RecordingSink",
    "block_payload",
    "make_block",
    "make_notice",
]

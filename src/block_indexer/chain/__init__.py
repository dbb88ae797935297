"""
Ledger data sources.

Records, the source Protocol the pipeline consumes, and JSON-RPC
implementations over HTTP (polling) and WebSocket (push).
"""

from .codec import decode_block, decode_data, decode_header, decode_quantity, encode_quantity
from .endpoint import EndpointKind, open_source
from .errors import (
    BlockNotFoundError,
    RpcError,
    SourceError,
    SubscriptionUnsupportedError,
    TransportClosedError,
)
from .records import BlockHeaderNotice, BlockRecord
from .rpc import HttpRpcSource, JsonRpcSource
from .source import LedgerSource, Subscription
from .ws import WebSocketRpcSource, WebSocketSubscription

__all__ = [
    # Records
    "BlockRecord",
    "BlockHeaderNotice",
    # Interfaces
    "LedgerSource",
    "Subscription",
    # Implementations
    "JsonRpcSource",
    "HttpRpcSource",
    "WebSocketRpcSource",
    "WebSocketSubscription",
    "EndpointKind",
    "open_source",
    # Codec
    "decode_block",
    "decode_data",
    "decode_header",
    "decode_quantity",
    "encode_quantity",
    # Errors
    "SourceError",
    "RpcError",
    "BlockNotFoundError",
    "SubscriptionUnsupportedError",
    "TransportClosedError",
]

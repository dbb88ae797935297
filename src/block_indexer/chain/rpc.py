"""
Ethereum JSON-RPC ledger source over HTTP(S).

The indexer needs only three read methods from the node:

- eth_blockNumber: current head
- eth_getBlockByNumber: historical backfill
- eth_getBlockByHash: blocks announced by a live subscription

Blocks are always requested with `fullTransactions=false`. Only the
transaction count is kept, so downloading every transaction body would waste
bandwidth.

Plain HTTP cannot push notifications. Live tailing over HTTP falls back to
polling in the pipeline; see `ws.py` for the push-capable transport.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from .codec import decode_block, decode_quantity, encode_quantity
from .errors import BlockNotFoundError, RpcError, SourceError, SubscriptionUnsupportedError
from .records import BlockHeaderNotice, BlockRecord
from .source import Subscription

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
"""HTTP request timeout in seconds."""

JSONRPC_VERSION = "2.0"
"""JSON-RPC protocol version sent with every request."""


def build_request(request_id: int, method: str, params: list[Any]) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 request object."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params}


def unwrap_response(method: str, body: dict[str, Any]) -> Any:
    """
    Extract the result of a JSON-RPC response.

    Raises:
        RpcError: If the response carries an error object.
    """
    error = body.get("error")
    if error is not None:
        raise RpcError(method, int(error.get("code", 0)), str(error.get("message", "")))
    return body.get("result")


class JsonRpcSource(ABC):
    """
    Ledger source backed by Ethereum JSON-RPC.

    Subclasses provide the transport through `_call`. Block decoding and
    null-result handling are shared.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)

    @abstractmethod
    async def _call(self, method: str, params: list[Any]) -> Any:
        """Send one JSON-RPC request and return its `result` member."""

    @property
    def supports_subscription(self) -> bool:
        """Whether new-head subscriptions are available."""
        return False

    async def fetch_by_number(self, number: int) -> BlockRecord:
        """Fetch the block at `number`."""
        payload = await self._call("eth_getBlockByNumber", [encode_quantity(number), False])
        if payload is None:
            raise BlockNotFoundError(f"block {number} not found")
        return decode_block(payload)

    async def fetch_by_hash(self, block_hash: str) -> BlockRecord:
        """Fetch the block with hash `block_hash`."""
        payload = await self._call("eth_getBlockByHash", [block_hash, False])
        if payload is None:
            raise BlockNotFoundError(f"block {block_hash} not found")
        return decode_block(payload)

    async def current_head(self) -> int:
        """Return the node's latest block number."""
        return decode_quantity(await self._call("eth_blockNumber", []))

    async def subscribe_new_heads(
        self,
        notices: asyncio.Queue[BlockHeaderNotice],
    ) -> Subscription:
        """Push transports override this. Request/response transports cannot."""
        raise SubscriptionUnsupportedError(
            f"{type(self).__name__} cannot deliver new-head notifications"
        )

    async def close(self) -> None:
        """Release transport resources."""


class HttpRpcSource(JsonRpcSource):
    """
    JSON-RPC source over HTTP(S), using httpx.

    One pooled AsyncClient is kept for the source's lifetime.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the HTTP source.

        Args:
            url: Node endpoint, e.g. "https://mainnet.example/rpc".
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests inject a MockTransport).
        """
        super().__init__()
        self._url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def _call(self, method: str, params: list[Any]) -> Any:
        request = build_request(next(self._ids), method, params)
        try:
            response = await self._client.post(self._url, json=request)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise SourceError(
                f"{method}: HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.RequestError as exc:
            raise SourceError(f"{method}: network error contacting {self._url}: {exc}") from exc
        except ValueError as exc:
            raise SourceError(f"{method}: malformed JSON response: {exc}") from exc

        return unwrap_response(method, body)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

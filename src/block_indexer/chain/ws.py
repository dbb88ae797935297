"""
Ethereum JSON-RPC ledger source over WebSocket, using aiohttp.

A WebSocket connection carries both request/response calls and server push
notifications on the same stream, so a single reader task owns the socket:

- Responses are matched to waiting callers by their JSON-RPC id
- `eth_subscription` notifications are routed to the subscription they
  belong to

Each subscription buffers notices internally and forwards them to the
caller's bounded queue from its own task. The reader therefore never blocks
on a slow consumer, which would otherwise stall the very responses that
consumer is waiting for.

When the socket closes or errors, every pending call fails and every live
subscription receives the error on its `errors` queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from typing import Any

import aiohttp

from .codec import decode_header
from .errors import SourceError, TransportClosedError
from .records import BlockHeaderNotice
from .rpc import DEFAULT_TIMEOUT, JsonRpcSource, build_request, unwrap_response

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 30.0
"""Seconds between WebSocket ping frames."""

EARLY_NOTICE_LIMIT = 16
"""Notices kept per subscription id while its eth_subscribe response is pending."""


class WebSocketSubscription:
    """
    Live `newHeads` subscription on a WebSocket source.

    Satisfies the `Subscription` protocol.
    """

    def __init__(
        self,
        source: WebSocketRpcSource,
        subscription_id: str,
        notices: asyncio.Queue[BlockHeaderNotice],
    ) -> None:
        self.subscription_id = subscription_id
        self.errors: asyncio.Queue[Exception] = asyncio.Queue()
        self._source = source
        self._notices = notices
        self._buffer: asyncio.Queue[BlockHeaderNotice] = asyncio.Queue()
        self._forwarder = asyncio.create_task(self._forward())
        self._active = True

    @property
    def active(self) -> bool:
        """Whether notices are still being delivered."""
        return self._active

    def deliver(self, notice: BlockHeaderNotice) -> None:
        """Buffer a notice routed here by the reader task."""
        if self._active:
            self._buffer.put_nowait(notice)

    def fail(self, exc: Exception) -> None:
        """Publish a transport failure and stop forwarding."""
        if self._active:
            self.errors.put_nowait(exc)
        self._active = False
        self._forwarder.cancel()

    async def _forward(self) -> None:
        while True:
            notice = await self._buffer.get()
            await self._notices.put(notice)

    async def unsubscribe(self) -> None:
        """Cancel the subscription on the node and stop forwarding."""
        was_active = self._active
        self._active = False
        self._forwarder.cancel()
        self._source.forget(self.subscription_id)
        if not was_active:
            return
        try:
            await self._source.unsubscribe(self.subscription_id)
        except SourceError as e:
            # The transport may already be gone; the node drops the
            # subscription with the connection.
            logger.debug("eth_unsubscribe %s failed: %s", self.subscription_id, e)


class WebSocketRpcSource(JsonRpcSource):
    """
    JSON-RPC source over WS(S) with push notifications.

    The connection is opened lazily on the first call.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """
        Initialize the WebSocket source.

        Args:
            url: Node endpoint, e.g. "wss://mainnet.example/ws".
            timeout: Seconds to wait for each response.
            session: Optional aiohttp session. Created (and owned) if absent.
        """
        super().__init__()
        self._url = url
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._connect_lock = asyncio.Lock()
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._subscriptions: dict[str, WebSocketSubscription] = {}

        # Notifications that raced ahead of their eth_subscribe response.
        self._early: defaultdict[str, deque[BlockHeaderNotice]] = defaultdict(
            lambda: deque(maxlen=EARLY_NOTICE_LIMIT)
        )
        # Ids already unsubscribed; late notifications for them are dropped.
        self._forgotten: set[str] = set()

    @property
    def supports_subscription(self) -> bool:
        """WebSocket transports deliver push notifications."""
        return True

    @property
    def connected(self) -> bool:
        """Whether the socket is open."""
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        """Open the socket and start the reader task. No-op if already open."""
        async with self._connect_lock:
            if self.connected:
                return
            if self._session is None:
                self._session = aiohttp.ClientSession()
            try:
                self._ws = await self._session.ws_connect(self._url, heartbeat=HEARTBEAT_INTERVAL)
            except (aiohttp.ClientError, OSError) as exc:
                raise SourceError(f"failed to connect to {self._url}: {exc}") from exc
            self._reader = asyncio.create_task(self._read_loop())
            logger.info("Connected to %s", self._url)

    async def _call(self, method: str, params: list[Any]) -> Any:
        await self.connect()
        assert self._ws is not None

        request_id = next(self._ids)
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            try:
                await self._ws.send_json(build_request(request_id, method, params))
            except (aiohttp.ClientError, ConnectionError) as exc:
                raise TransportClosedError(f"{method}: send failed: {exc}") from exc
            try:
                body = await asyncio.wait_for(future, self._timeout)
            except TimeoutError as exc:
                raise SourceError(f"{method}: no response within {self._timeout}s") from exc
        finally:
            self._pending.pop(request_id, None)

        return unwrap_response(method, body)

    async def _read_loop(self) -> None:
        assert self._ws is not None
        reason: Exception = TransportClosedError(f"connection to {self._url} closed")
        try:
            async for message in self._ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch(message.json())
                elif message.type == aiohttp.WSMsgType.ERROR:
                    reason = TransportClosedError(f"connection error: {self._ws.exception()}")
                    break
        except (KeyError, ValueError, TypeError) as e:
            reason = TransportClosedError(f"malformed frame from {self._url}: {e}")
        finally:
            self._fail_all(reason)

    def _dispatch(self, body: Any) -> None:
        """
        Route one decoded frame to a waiting caller or a subscription.

        Raises:
            ValueError: If the frame is not a JSON-RPC object.
        """
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")

        if body.get("method") == "eth_subscription":
            params = body.get("params")
            if not isinstance(params, dict):
                raise ValueError("eth_subscription without a params object")
            subscription_id = str(params.get("subscription"))
            notice = decode_header(params["result"])
            subscription = self._subscriptions.get(subscription_id)
            if subscription is not None:
                subscription.deliver(notice)
            elif subscription_id not in self._forgotten:
                self._early[subscription_id].append(notice)
            return

        future = self._pending.get(body.get("id"))  # type: ignore[arg-type]
        if future is not None and not future.done():
            future.set_result(body)

    def _fail_all(self, exc: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        for subscription in list(self._subscriptions.values()):
            subscription.fail(exc)
        if self._subscriptions:
            logger.warning("Subscription transport lost: %s", exc)

    async def subscribe_new_heads(
        self,
        notices: asyncio.Queue[BlockHeaderNotice],
    ) -> WebSocketSubscription:
        """Subscribe to `newHeads` and forward notices into `notices`."""
        subscription_id = str(await self._call("eth_subscribe", ["newHeads"]))
        subscription = WebSocketSubscription(self, subscription_id, notices)
        self._subscriptions[subscription_id] = subscription
        for notice in self._early.pop(subscription_id, []):
            subscription.deliver(notice)
        logger.info("Subscribed to new heads (id=%s)", subscription_id)
        return subscription

    async def unsubscribe(self, subscription_id: str) -> None:
        """Send `eth_unsubscribe` for a subscription id."""
        if self.connected:
            await self._call("eth_unsubscribe", [subscription_id])

    def forget(self, subscription_id: str) -> None:
        """Stop routing notifications for a subscription id."""
        self._subscriptions.pop(subscription_id, None)
        self._early.pop(subscription_id, None)
        self._forgotten.add(subscription_id)

    async def close(self) -> None:
        """Close the socket, stop the reader and release the session."""
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        self._ws = None

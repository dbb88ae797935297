"""
Endpoint classification and source construction.

The endpoint scheme decides the pipeline mode:

- http:// and https:// can only answer requests, so new blocks are polled
- ws:// and wss:// can push new-head notifications, so the pipeline
  subscribes after its historical backfill
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import urlsplit

from .rpc import DEFAULT_TIMEOUT, HttpRpcSource, JsonRpcSource
from .ws import WebSocketRpcSource


class EndpointKind(Enum):
    """Transport family of an RPC endpoint, keyed by URL scheme."""

    HTTP = "http"
    HTTPS = "https"
    WS = "ws"
    WSS = "wss"

    @classmethod
    def from_url(cls, url: str) -> EndpointKind:
        """
        Classify an endpoint URL by its scheme.

        Raises:
            ValueError: If the scheme is not one of http, https, ws, wss.
        """
        scheme = urlsplit(url).scheme.lower()
        try:
            return cls(scheme)
        except ValueError:
            supported = ", ".join(f"{kind.value}://" for kind in cls)
            raise ValueError(
                f"Unsupported endpoint {url!r}. Supported schemes are {supported}"
            ) from None

    @property
    def supports_subscription(self) -> bool:
        """Whether this transport can deliver push notifications."""
        return self in (EndpointKind.WS, EndpointKind.WSS)


def open_source(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> JsonRpcSource:
    """
    Build the ledger source matching an endpoint URL.

    The connection itself is established lazily on first use.

    Raises:
        ValueError: If the scheme is unsupported.
    """
    kind = EndpointKind.from_url(url)
    if kind.supports_subscription:
        return WebSocketRpcSource(url, timeout=timeout)
    return HttpRpcSource(url, timeout=timeout)

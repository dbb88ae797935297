"""Errors raised by ledger data sources."""

from __future__ import annotations


class SourceError(Exception):
    """Base class for ledger source failures."""


class RpcError(SourceError):
    """
    The node answered a JSON-RPC call with an error object.

    Carries the JSON-RPC error code so callers can tell rate limiting from
    malformed requests in the logs.
    """

    def __init__(self, method: str, code: int, message: str) -> None:
        super().__init__(f"{method} failed with code {code}: {message}")
        self.method = method
        self.code = code
        self.message = message


class BlockNotFoundError(SourceError):
    """The node returned a null block for the requested number or hash."""


class SubscriptionUnsupportedError(SourceError):
    """The transport cannot deliver push notifications."""


class TransportClosedError(SourceError):
    """The persistent connection to the node was lost."""

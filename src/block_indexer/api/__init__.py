"""
API server module for indexer status endpoints.

Provides HTTP endpoints for:
- /indexer/v0/health - Health check endpoint
- /indexer/v0/status - Pipeline progress
- /metrics - Prometheus metrics
"""

from .server import ApiServer, ApiServerConfig, progress_to_json

__all__ = [
    "ApiServer",
    "ApiServerConfig",
    "progress_to_json",
]

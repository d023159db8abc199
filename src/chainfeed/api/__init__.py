"""
API server module for the renderer boundary.

Provides HTTP endpoints for:
- /chainfeed/v0/items - Read-only item snapshot
- /chainfeed/v0/status - Connection status and counters
- /chainfeed/v0/health - Health check endpoint
- /metrics - Prometheus metrics
"""

from .server import ApiServer, ApiServerConfig

__all__ = [
    "ApiServer",
    "ApiServerConfig",
]

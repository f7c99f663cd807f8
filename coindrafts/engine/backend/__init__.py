"""Contest backend RPC client."""

from .client import DEFAULT_BACKEND_ENDPOINT, ContestBackendClient, snapshot_to_wire

__all__ = ["ContestBackendClient", "DEFAULT_BACKEND_ENDPOINT", "snapshot_to_wire"]

"""
ethgate Upstream Clients

Transports to the upstream RPC endpoint the gateway fronts.
"""

from .base import UpstreamClient, NotificationListener
from .http import HTTPUpstreamClient
from .websocket import WebSocketUpstreamClient


def create_upstream(url: str, chain_id: str = "default", timeout: float = 60.0) -> UpstreamClient:
    """
    Build the upstream client matching the URL scheme.

    ``ws://`` / ``wss://`` get a WebSocket client (calls and notifications),
    ``http://`` / ``https://`` an HTTP client (calls only).
    """
    if url.startswith(("ws://", "wss://")):
        return WebSocketUpstreamClient(url, chain_id=chain_id, timeout=timeout)
    if url.startswith(("http://", "https://")):
        return HTTPUpstreamClient(url, chain_id=chain_id, timeout=timeout)
    raise ValueError(f"Unsupported upstream URL scheme: {url}")


__all__ = [
    "UpstreamClient",
    "NotificationListener",
    "HTTPUpstreamClient",
    "WebSocketUpstreamClient",
    "create_upstream",
]

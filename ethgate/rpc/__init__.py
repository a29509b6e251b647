"""
ethgate RPC Module

The proxy pipeline behind both transports:
- request normalization (batch → first element)
- retrying dispatch with synthetic answers for block 0 and net_listening
- response patching backed by the receipt-log cache
- WebSocket connection and subscription management
"""

from .cache import TxCache
from .dispatcher import Dispatcher, RetryPolicy
from .patcher import ResponsePatcher
from .server import ProxyServer, normalize_request
from .state import GatewayState
from .websocket import WebSocketManager

__all__ = [
    "TxCache",
    "Dispatcher",
    "RetryPolicy",
    "ResponsePatcher",
    "ProxyServer",
    "normalize_request",
    "GatewayState",
    "WebSocketManager",
]

"""
ethgate Configuration

Loads all sections of gateway.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    GatewayConfig,
    GatewaySectionConfig,
    UpstreamConfig,
    HTTPConfig,
    WebSocketConfig,
    RetryConfig,
    CacheConfig,
    RPCSectionConfig,
    load_config,
)

__all__ = [
    "GatewayConfig",
    "GatewaySectionConfig",
    "UpstreamConfig",
    "HTTPConfig",
    "WebSocketConfig",
    "RetryConfig",
    "CacheConfig",
    "RPCSectionConfig",
    "load_config",
]

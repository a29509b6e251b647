"""
ethgate TOML Configuration Loader

Loads the sections of gateway.toml at startup with environment variable overrides.

Environment variable mapping:
    [upstream] url        → ETHGATE_UPSTREAM_URL  (legacy: CHAIN_ENDPOINT)
    [upstream] chain_id   → ETHGATE_CHAIN_ID
    [http] host           → ETHGATE_HTTP_HOST
    [http] port           → ETHGATE_HTTP_PORT     (legacy: WSPORT)
    [websocket] port      → ETHGATE_WS_PORT
    [retry] max_attempts  → ETHGATE_RETRY_MAX_ATTEMPTS
    [cache] max_entries   → ETHGATE_CACHE_MAX_ENTRIES
    [gateway] log_level   → ETHGATE_LOG_LEVEL
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..constants import (
    DEFAULT_CHAIN_ID,
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_UPSTREAM_TIMEOUT,
    DEFAULT_UPSTREAM_URL,
    RETRY_FACTOR,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_TIMEOUT,
    RETRY_MIN_TIMEOUT,
    TX_CACHE_MAX_ENTRIES,
)

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class GatewaySectionConfig:
    """[gateway] section."""
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewaySectionConfig":
        return cls(log_level=data.get("log_level", "INFO"))

    def apply_env(self) -> None:
        if v := os.environ.get("ETHGATE_LOG_LEVEL"):
            self.log_level = v.upper()


@dataclass
class UpstreamConfig:
    """[upstream] section."""
    url: str = DEFAULT_UPSTREAM_URL
    chain_id: str = DEFAULT_CHAIN_ID
    # Per-call timeout (seconds) inside the upstream client
    timeout: float = DEFAULT_UPSTREAM_TIMEOUT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UpstreamConfig":
        return cls(
            url=data.get("url", DEFAULT_UPSTREAM_URL),
            chain_id=str(data.get("chain_id", DEFAULT_CHAIN_ID)),
            timeout=float(data.get("timeout", DEFAULT_UPSTREAM_TIMEOUT)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("CHAIN_ENDPOINT"):
            # The legacy variable names the chain base URL, not the socket path
            self.url = v.rstrip("/") + "/websocket" if v.startswith("ws") else v
        if v := os.environ.get("ETHGATE_UPSTREAM_URL"):
            self.url = v
        if v := os.environ.get("ETHGATE_CHAIN_ID"):
            self.chain_id = v


@dataclass
class HTTPConfig:
    """[http] section."""
    host: str = DEFAULT_HTTP_HOST
    port: int = DEFAULT_HTTP_PORT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HTTPConfig":
        return cls(
            host=data.get("host", DEFAULT_HTTP_HOST),
            port=int(data.get("port", DEFAULT_HTTP_PORT)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("WSPORT"):
            self.port = int(v)
        if v := os.environ.get("ETHGATE_HTTP_HOST"):
            self.host = v
        if v := os.environ.get("ETHGATE_HTTP_PORT"):
            self.port = int(v)


@dataclass
class WebSocketConfig:
    """[websocket] section."""
    # None = share the HTTP listener
    port: Optional[int] = None
    max_connections: int = 1000

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebSocketConfig":
        port = data.get("port")
        return cls(
            port=int(port) if port is not None else None,
            max_connections=int(data.get("max_connections", 1000)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("ETHGATE_WS_PORT"):
            self.port = int(v)


@dataclass
class RetryConfig:
    """[retry] section."""
    max_attempts: int = RETRY_MAX_ATTEMPTS
    min_timeout: float = RETRY_MIN_TIMEOUT
    max_timeout: float = RETRY_MAX_TIMEOUT
    factor: float = RETRY_FACTOR

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        return cls(
            max_attempts=int(data.get("max_attempts", RETRY_MAX_ATTEMPTS)),
            min_timeout=float(data.get("min_timeout", RETRY_MIN_TIMEOUT)),
            max_timeout=float(data.get("max_timeout", RETRY_MAX_TIMEOUT)),
            factor=float(data.get("factor", RETRY_FACTOR)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("ETHGATE_RETRY_MAX_ATTEMPTS"):
            self.max_attempts = int(v)


@dataclass
class CacheConfig:
    """[cache] section."""
    # None = unbounded
    max_entries: Optional[int] = TX_CACHE_MAX_ENTRIES
    # Seconds; None = entries never expire
    ttl: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        max_entries = data.get("max_entries", TX_CACHE_MAX_ENTRIES)
        ttl = data.get("ttl")
        return cls(
            max_entries=int(max_entries) if max_entries is not None else None,
            ttl=float(ttl) if ttl is not None else None,
        )

    def apply_env(self) -> None:
        if v := os.environ.get("ETHGATE_CACHE_MAX_ENTRIES"):
            self.max_entries = int(v)


@dataclass
class RPCSectionConfig:
    """[rpc] section."""
    # Reject batch requests instead of serving only their first element
    reject_batches: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RPCSectionConfig":
        return cls(reject_batches=bool(data.get("reject_batches", False)))


@dataclass
class GatewayConfig:
    """
    Unified gateway configuration.

    Loads every section of gateway.toml and applies environment variable
    overrides. This is the single source of truth at runtime.
    """
    gateway: GatewaySectionConfig = field(default_factory=GatewaySectionConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    websocket: WebSocketConfig = field(default_factory=WebSocketConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    rpc: RPCSectionConfig = field(default_factory=RPCSectionConfig)

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewayConfig":
        """Create GatewayConfig from a parsed TOML dict."""
        return cls(
            gateway=GatewaySectionConfig.from_dict(data.get("gateway", {})),
            upstream=UpstreamConfig.from_dict(data.get("upstream", {})),
            http=HTTPConfig.from_dict(data.get("http", {})),
            websocket=WebSocketConfig.from_dict(data.get("websocket", {})),
            retry=RetryConfig.from_dict(data.get("retry", {})),
            cache=CacheConfig.from_dict(data.get("cache", {})),
            rpc=RPCSectionConfig.from_dict(data.get("rpc", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "GatewayConfig":
        """
        Load configuration from a TOML file.

        A missing file is not an error: defaults plus environment overrides
        are used instead.

        Args:
            config_path: Path to gateway.toml

        Returns:
            GatewayConfig instance
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            raw = tomllib.load(f)

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.gateway.apply_env()
        self.upstream.apply_env()
        self.http.apply_env()
        self.websocket.apply_env()
        self.retry.apply_env()
        self.cache.apply_env()

    # --- derived ------------------------------------------------------------

    @property
    def listen_ports(self) -> list:
        """Distinct ports the gateway app must be served on."""
        ports = [self.http.port]
        if self.websocket.port is not None and self.websocket.port != self.http.port:
            ports.append(self.websocket.port)
        return ports

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all valid

        Raises:
            ValueError: on invalid config
        """
        if not self.upstream.url:
            raise ValueError("upstream.url must be set")
        if not self.upstream.url.startswith(("http://", "https://", "ws://", "wss://")):
            raise ValueError(f"Unsupported upstream URL scheme: {self.upstream.url}")
        if self.gateway.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.gateway.log_level}")
        for port in self.listen_ports:
            if not 0 < port < 65536:
                raise ValueError(f"Invalid port: {port}")
        if self.retry.max_attempts < 1:
            raise ValueError("retry.max_attempts must be >= 1")
        if self.retry.min_timeout < 0 or self.retry.max_timeout < self.retry.min_timeout:
            raise ValueError("retry timeouts must satisfy 0 <= min_timeout <= max_timeout")
        if self.cache.max_entries is not None and self.cache.max_entries < 1:
            raise ValueError("cache.max_entries must be >= 1")
        if self.websocket.max_connections < 1:
            raise ValueError("websocket.max_connections must be >= 1")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "gateway": {"log_level": self.gateway.log_level},
            "upstream": {
                "url": self.upstream.url,
                "chain_id": self.upstream.chain_id,
                "timeout": self.upstream.timeout,
            },
            "http": {"host": self.http.host, "port": self.http.port},
            "websocket": {
                "port": self.websocket.port,
                "max_connections": self.websocket.max_connections,
            },
            "retry": {
                "max_attempts": self.retry.max_attempts,
                "min_timeout": self.retry.min_timeout,
                "max_timeout": self.retry.max_timeout,
                "factor": self.retry.factor,
            },
            "cache": {"max_entries": self.cache.max_entries, "ttl": self.cache.ttl},
            "rpc": {"reject_batches": self.rpc.reject_batches},
        }


def load_config(path: Optional[str] = None) -> GatewayConfig:
    """
    Load the gateway configuration.

    Resolution order: explicit ``path``, then ``ETHGATE_CONFIG``, then
    ``gateway.toml`` in the working directory.
    """
    config_path = path or os.environ.get("ETHGATE_CONFIG", "gateway.toml")
    return GatewayConfig.from_file(config_path)

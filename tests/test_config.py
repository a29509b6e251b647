"""
Tests for the TOML configuration loader and its environment overrides.
"""

import textwrap
from unittest.mock import patch

import pytest

from ethgate.config.loader import (
    CacheConfig,
    GatewayConfig,
    RetryConfig,
    UpstreamConfig,
    load_config,
)
from ethgate.constants import DEFAULT_HTTP_PORT, DEFAULT_UPSTREAM_URL, RETRY_MAX_ATTEMPTS

ENV_KEYS = (
    "ETHGATE_CONFIG",
    "ETHGATE_LOG_LEVEL",
    "ETHGATE_UPSTREAM_URL",
    "ETHGATE_CHAIN_ID",
    "ETHGATE_HTTP_HOST",
    "ETHGATE_HTTP_PORT",
    "ETHGATE_WS_PORT",
    "ETHGATE_RETRY_MAX_ATTEMPTS",
    "ETHGATE_CACHE_MAX_ENTRIES",
    "CHAIN_ENDPOINT",
    "WSPORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host environment out of the loader."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def toml_file(tmp_path):
    path = tmp_path / "gateway.toml"
    path.write_text(textwrap.dedent("""\
        [gateway]
        log_level = "DEBUG"

        [upstream]
        url = "ws://localhost:46658/websocket"
        chain_id = "default"
        timeout = 15

        [http]
        host = "127.0.0.1"
        port = 9000

        [websocket]
        port = 9001
        max_connections = 10

        [retry]
        max_attempts = 5
        min_timeout = 1
        max_timeout = 4

        [cache]
        max_entries = 100
        ttl = 600

        [rpc]
        reject_batches = true
    """))
    return str(path)


class TestDefaults:

    def test_defaults(self):
        cfg = GatewayConfig()
        assert cfg.upstream.url == DEFAULT_UPSTREAM_URL
        assert cfg.http.port == DEFAULT_HTTP_PORT
        assert cfg.websocket.port is None
        assert cfg.retry.max_attempts == RETRY_MAX_ATTEMPTS
        assert cfg.cache.ttl is None
        assert cfg.rpc.reject_batches is False

    def test_defaults_validate(self):
        assert GatewayConfig().validate() is True

    def test_single_listener_by_default(self):
        assert GatewayConfig().listen_ports == [DEFAULT_HTTP_PORT]


class TestFromFile:

    def test_sections_loaded(self, toml_file):
        cfg = GatewayConfig.from_file(toml_file)
        assert cfg.gateway.log_level == "DEBUG"
        assert cfg.upstream.url == "ws://localhost:46658/websocket"
        assert cfg.upstream.timeout == 15.0
        assert cfg.http.host == "127.0.0.1"
        assert cfg.http.port == 9000
        assert cfg.websocket.max_connections == 10
        assert cfg.retry.max_attempts == 5
        assert cfg.retry.max_timeout == 4.0
        assert cfg.cache.max_entries == 100
        assert cfg.cache.ttl == 600.0
        assert cfg.rpc.reject_batches is True

    def test_split_listeners(self, toml_file):
        cfg = GatewayConfig.from_file(toml_file)
        assert cfg.listen_ports == [9000, 9001]

    def test_same_port_not_duplicated(self):
        cfg = GatewayConfig.from_dict({"http": {"port": 9000}, "websocket": {"port": 9000}})
        assert cfg.listen_ports == [9000]

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = GatewayConfig.from_file(str(tmp_path / "nope.toml"))
        assert cfg.upstream.url == DEFAULT_UPSTREAM_URL

    def test_load_config_reads_env_path(self, toml_file, monkeypatch):
        monkeypatch.setenv("ETHGATE_CONFIG", toml_file)
        assert load_config().http.port == 9000

    def test_explicit_path_wins(self, toml_file, tmp_path, monkeypatch):
        monkeypatch.setenv("ETHGATE_CONFIG", str(tmp_path / "other.toml"))
        assert load_config(toml_file).http.port == 9000

    def test_to_dict(self, toml_file):
        d = GatewayConfig.from_file(toml_file).to_dict()
        assert d["upstream"]["chain_id"] == "default"
        assert d["cache"] == {"max_entries": 100, "ttl": 600.0}
        assert d["rpc"]["reject_batches"] is True


class TestEnvOverrides:

    def test_upstream_url(self, toml_file):
        with patch.dict("os.environ", {"ETHGATE_UPSTREAM_URL": "https://rpc.example"}):
            cfg = GatewayConfig.from_file(toml_file)
        assert cfg.upstream.url == "https://rpc.example"

    def test_legacy_chain_endpoint_gets_socket_path(self):
        cfg = UpstreamConfig()
        with patch.dict("os.environ", {"CHAIN_ENDPOINT": "wss://chain.example/"}):
            cfg.apply_env()
        assert cfg.url == "wss://chain.example/websocket"

    def test_legacy_chain_endpoint_http_untouched(self):
        cfg = UpstreamConfig()
        with patch.dict("os.environ", {"CHAIN_ENDPOINT": "http://chain.example/rpc"}):
            cfg.apply_env()
        assert cfg.url == "http://chain.example/rpc"

    def test_new_variable_beats_legacy(self):
        cfg = UpstreamConfig()
        env = {"CHAIN_ENDPOINT": "wss://old.example", "ETHGATE_UPSTREAM_URL": "wss://new.example/ws"}
        with patch.dict("os.environ", env):
            cfg.apply_env()
        assert cfg.url == "wss://new.example/ws"

    def test_legacy_port(self):
        cfg = GatewayConfig()
        with patch.dict("os.environ", {"WSPORT": "8545"}):
            cfg.apply_env()
        assert cfg.http.port == 8545

    def test_ports_and_limits(self):
        cfg = GatewayConfig()
        env = {
            "ETHGATE_HTTP_PORT": "7000",
            "ETHGATE_WS_PORT": "7001",
            "ETHGATE_RETRY_MAX_ATTEMPTS": "3",
            "ETHGATE_CACHE_MAX_ENTRIES": "42",
            "ETHGATE_LOG_LEVEL": "debug",
        }
        with patch.dict("os.environ", env):
            cfg.apply_env()
        assert cfg.listen_ports == [7000, 7001]
        assert cfg.retry.max_attempts == 3
        assert cfg.cache.max_entries == 42
        assert cfg.gateway.log_level == "DEBUG"


class TestValidation:

    def test_bad_scheme(self):
        cfg = GatewayConfig.from_dict({"upstream": {"url": "ftp://nope"}})
        with pytest.raises(ValueError, match="scheme"):
            cfg.validate()

    def test_bad_port(self):
        cfg = GatewayConfig.from_dict({"http": {"port": 70000}})
        with pytest.raises(ValueError, match="port"):
            cfg.validate()

    def test_bad_log_level(self):
        cfg = GatewayConfig.from_dict({"gateway": {"log_level": "LOUD"}})
        with pytest.raises(ValueError, match="log_level"):
            cfg.validate()

    def test_zero_attempts(self):
        cfg = GatewayConfig(retry=RetryConfig(max_attempts=0))
        with pytest.raises(ValueError, match="max_attempts"):
            cfg.validate()

    def test_inverted_timeouts(self):
        cfg = GatewayConfig(retry=RetryConfig(min_timeout=10, max_timeout=1))
        with pytest.raises(ValueError, match="timeouts"):
            cfg.validate()

    def test_cache_bound(self):
        cfg = GatewayConfig(cache=CacheConfig(max_entries=0))
        with pytest.raises(ValueError, match="max_entries"):
            cfg.validate()

    def test_unbounded_cache_allowed(self):
        assert GatewayConfig(cache=CacheConfig(max_entries=None)).validate() is True

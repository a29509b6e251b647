"""
ethgate Constants

This module consolidates the gateway's global constants and the environment
configuration used by the logging system. Runtime settings for the proxy
itself (ports, upstream URL, retry policy) live in ``ethgate.config``.
"""
import ast
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_TO_FILE':                     'False',
    'LOG_INCLUDE_RESPONSE_CONTENT':    'False',
    'LOG_INCLUDE_REQUEST_CONTENT':     'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_MAX_CONTENT_LENGTH = 2048  # Request/response bodies longer than this are truncated in logs
LOG_BACKUP_COUNT = 5


# ==================================================================================
# GATEWAY
# ==================================================================================
GATEWAY_VERSION = '1.0.0'
JSONRPC_VERSION = '2.0'

DEFAULT_UPSTREAM_URL = 'wss://plasma.dappchains.com/websocket'
DEFAULT_CHAIN_ID = 'default'
DEFAULT_HTTP_HOST = '0.0.0.0'
DEFAULT_HTTP_PORT = 8081
DEFAULT_UPSTREAM_TIMEOUT = 60.0

# Retry policy for upstream calls: min(MIN * FACTOR ** (n - 1), MAX) seconds
RETRY_MAX_ATTEMPTS = 50
RETRY_MIN_TIMEOUT = 20.0
RETRY_MAX_TIMEOUT = 50.0
RETRY_FACTOR = 2.0

# Receipt log cache
TX_CACHE_MAX_ENTRIES = 10_000

# CORS headers sent on every HTTP response
CORS_HEADERS = {
    'Access-Control-Allow-Origin':   '*',
    'Access-Control-Request-Method': '*',
    'Access-Control-Allow-Methods':  'OPTIONS, POST',
    'Access-Control-Allow-Headers':  '*',
}


# ==================================================================================
# BLOCK FILLERS
# ==================================================================================
# The upstream omits these fields; explorers only check they are present.
FILLER_MINER = '0xB3B1ab0A0531C59E97adcC2c0067c84031f57CEF'

BLOCK_FILLER_FIELDS = {
    'miner':           FILLER_MINER,
    'difficulty':      '0x01',
    'totalDifficulty': '0x01',
    'gasLimit':        '0x01',
    'gasUsed':         '0x01',
    'size':            '0x01',
    'timestamp':       '0x54e34e8e',
}

NOTIFICATION_FILLER_FIELDS = {
    'parentHash':       '0x0',
    'miner':            FILLER_MINER,
    'stateRoot':        '0x0',
    'transactionsRoot': '0x0',
    'receiptsRoot':     '0x0',
    'timestamp':        '0x5c915570',
    'nonce':            '0x0000000000000000',
    'extraData':        '0x0',
    'difficulty':       '0x0',
    'gasLimit':         '0x0',
    'gasUsed':          '0x0',
    'size':             '0x0',
    'totalDifficulty':  '0x0',
}


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in LOGGER_DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)

"""
ethgate JSON-RPC Proxy Server

Transport-independent request pipeline shared by the HTTP and WebSocket
front ends:

    raw body → normalize → dispatch (retrying) → patch → response

Only the first element of a batch request is served; the rest are dropped
without a response. Setting ``reject_batches`` refuses batches instead.
"""

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional, Union

from ..constants import JSONRPC_VERSION
from ..exceptions import MalformedRequest, UnsupportedBatch, UpstreamError
from ..logger import get_logger
from .dispatcher import Dispatcher
from .patcher import ResponsePatcher

logger = get_logger(__name__)


class RPCErrorCode(IntEnum):
    """Standard JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (-32000 to -32099)
    SERVER_ERROR = -32000
    LIMIT_EXCEEDED = -32005


@dataclass
class RPCError(Exception):
    """JSON-RPC error."""

    code: int
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict:
        result = {
            "code": int(self.code),
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass
class RPCRequest:
    """JSON-RPC request."""

    jsonrpc: str
    method: str
    params: Union[List, Dict]
    id: Union[str, int, None]

    @classmethod
    def from_dict(cls, data: dict) -> "RPCRequest":
        params = data.get("params")
        return cls(
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
            method=data.get("method", ""),
            params=params if params is not None else [],
            id=data.get("id"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "jsonrpc": self.jsonrpc,
            "method": self.method,
            "params": self.params,
        }


@dataclass
class RPCResponse:
    """JSON-RPC response built by the gateway itself (errors, mostly)."""

    jsonrpc: str = JSONRPC_VERSION
    result: Optional[Any] = None
    error: Optional[Dict] = None
    id: Union[str, int, None] = None

    def to_dict(self) -> dict:
        response = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            response["error"] = self.error
        else:
            response["result"] = self.result
        return response

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def normalize_request(raw: Union[str, bytes], reject_batches: bool = False) -> Dict[str, Any]:
    """
    Decode a request body into a single JSON-RPC request dict.

    Args:
        raw: Request body
        reject_batches: Refuse batch (array) bodies instead of serving element 0

    Returns:
        Request dict with ``id``, ``jsonrpc``, ``method`` and ``params``

    Raises:
        MalformedRequest: body is not JSON or not a request object
        UnsupportedBatch: batch body while ``reject_batches`` is set
    """
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedRequest(str(e)) from e

    if isinstance(parsed, list):
        if reject_batches:
            raise UnsupportedBatch("Batch requests are not supported")
        if not parsed:
            raise MalformedRequest("Empty batch")
        if len(parsed) > 1:
            logger.debug("Batch of %d requests, serving only the first", len(parsed))
        parsed = parsed[0]

    if not isinstance(parsed, dict):
        raise MalformedRequest(f"Invalid request: expected an object, got {type(parsed).__name__}")

    request = RPCRequest.from_dict(parsed)
    if not isinstance(request.method, str) or not request.method:
        raise MalformedRequest("Invalid request: missing method")
    if not isinstance(request.params, (list, dict)):
        raise MalformedRequest("Invalid request: params must be an array or object")
    return request.to_dict()


def error_response(exc: Exception, request_id: Union[str, int, None] = None) -> RPCResponse:
    """JSON-RPC error envelope for a gateway-level failure."""
    if isinstance(exc, UnsupportedBatch):
        error = RPCError(RPCErrorCode.INVALID_REQUEST, str(exc))
    elif isinstance(exc, MalformedRequest):
        error = RPCError(RPCErrorCode.PARSE_ERROR, f"Parse error: {exc}")
    elif isinstance(exc, UpstreamError):
        error = RPCError(RPCErrorCode.INTERNAL_ERROR, exc.message, exc.data)
    else:
        error = RPCError(RPCErrorCode.INTERNAL_ERROR, str(exc))
    return RPCResponse(id=request_id, error=error.to_dict())


class ProxyServer:
    """
    The normalize → dispatch → patch pipeline.

    Used by the HTTP and WebSocket transports.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        patcher: ResponsePatcher,
        reject_batches: bool = False,
    ):
        self.dispatcher = dispatcher
        self.patcher = patcher
        self.reject_batches = reject_batches

    def normalize(self, raw: Union[str, bytes]) -> Dict[str, Any]:
        return normalize_request(raw, reject_batches=self.reject_batches)

    async def process(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch an already-normalized request and patch its response."""
        response = await self.dispatcher.dispatch(request)
        return self.patcher.patch(request, response)

    async def handle_request(self, raw: Union[str, bytes]) -> Dict[str, Any]:
        """
        Handle one raw request body.

        Raises:
            MalformedRequest: unusable body
            UpstreamError: upstream failure after retries
        """
        return await self.process(self.normalize(raw))

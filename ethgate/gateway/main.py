"""
ethgate Gateway Application

FastAPI app exposing the proxy on one listener:

- HTTP ``POST`` (any path): one JSON-RPC request (or a batch, of which only
  the first element is served)
- HTTP ``OPTIONS`` / ``GET``: empty 200 (CORS preflight / liveness)
- any other verb: empty 502
- WebSocket (any path): JSON-RPC frames plus subscription pushes
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from starlette.requests import Request
from starlette.responses import Response

from ..config import GatewayConfig
from ..constants import (
    CORS_HEADERS,
    GATEWAY_VERSION,
    LOG_INCLUDE_REQUEST_CONTENT,
    LOG_INCLUDE_RESPONSE_CONTENT,
)
from ..exceptions import GatewayException, UnsupportedMethod, UpstreamError
from ..logger import get_logger, truncate_content
from ..rpc.cache import TxCache
from ..rpc.dispatcher import Dispatcher, RetryPolicy
from ..rpc.patcher import ResponsePatcher
from ..rpc.server import ProxyServer, RPCError
from ..rpc.state import GatewayState
from ..rpc.websocket import WebSocketManager
from ..upstream import UpstreamClient, create_upstream

logger = get_logger(__name__)

# WebSocket close code for "try again later"
WS_CLOSE_TRY_AGAIN_LATER = 1013


def _error_body(exc: GatewayException) -> str:
    """Machine-readable upstream payload when there is one, else the message."""
    if isinstance(exc, UpstreamError):
        if isinstance(exc.data, (dict, list)):
            return json.dumps(exc.data)
        if exc.data is not None:
            return str(exc.data)
        return exc.message
    return str(exc)


def create_app(
    config: Optional[GatewayConfig] = None,
    upstream: Optional[UpstreamClient] = None,
    state: Optional[GatewayState] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        config: Gateway configuration (defaults + env when omitted)
        upstream: Upstream client; built from ``config.upstream`` when omitted
        state: Shared gateway state; a fresh one when omitted
        retry_policy: Overrides the policy from ``config.retry``

    Returns:
        FastAPI application
    """
    if config is None:
        config = GatewayConfig()
        config.apply_env()

    if upstream is None:
        upstream = create_upstream(
            config.upstream.url,
            chain_id=config.upstream.chain_id,
            timeout=config.upstream.timeout,
        )
    if state is None:
        state = GatewayState(TxCache(max_entries=config.cache.max_entries, ttl=config.cache.ttl))

    dispatcher = Dispatcher(upstream, state, retry_policy or RetryPolicy.from_config(config.retry))
    proxy = ProxyServer(dispatcher, ResponsePatcher(state), reject_batches=config.rpc.reject_batches)
    ws_manager = WebSocketManager(proxy, upstream, max_connections=config.websocket.max_connections)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting ethgate %s: upstream %s (chain=%s)",
            GATEWAY_VERSION, config.upstream.url, config.upstream.chain_id,
        )
        try:
            await upstream.connect()
        except UpstreamError as e:
            # Calls reconnect lazily; the retry policy covers the gap
            logger.warning("Upstream not reachable at startup: %s", e.message)
        yield
        await upstream.close()
        logger.info("Upstream connection closed.")

    app = FastAPI(
        title="ethgate",
        description="JSON-RPC gateway presenting a non-standard upstream as an Ethereum node.",
        version=GATEWAY_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.upstream = upstream
    app.state.gateway_state = state
    app.state.proxy = proxy
    app.state.ws_manager = ws_manager

    # ========================================================================
    # MIDDLEWARE
    # ========================================================================

    @app.middleware("http")
    async def cors_and_logging(request: Request, call_next):
        """Attach CORS headers to every response and log the exchange."""
        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        path = request.url.path

        logger.debug(f"<-- {client_ip} - \"{method} {path}\"")
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"--> {client_ip} - \"{method} {path}\" ERROR ({time.time() - start_time:.3f}s): {e}")
            raise

        response.headers.update(CORS_HEADERS)
        logger.info(
            f"--> {client_ip} - \"{method} {path}\" status={response.status_code} "
            f"({time.time() - start_time:.3f}s)"
        )
        return response

    # ========================================================================
    # ERROR HANDLERS
    # ========================================================================

    @app.exception_handler(UnsupportedMethod)
    async def unsupported_method_handler(request: Request, exc: UnsupportedMethod):
        return Response(status_code=502)

    @app.exception_handler(GatewayException)
    async def gateway_exception_handler(request: Request, exc: GatewayException):
        logger.error(f"Request failed: {exc}")
        return Response(content=_error_body(exc), status_code=500)

    # ========================================================================
    # HTTP FRONT END
    # ========================================================================

    async def http_endpoint(request: Request):
        if request.method == "POST":
            body = await request.body()
            if LOG_INCLUDE_REQUEST_CONTENT:
                logger.debug(f"HTTP Body {truncate_content(body.decode('utf-8', errors='replace'))}")

            try:
                payload = json.dumps(await proxy.handle_request(body))
            except GatewayException:
                raise
            except Exception as e:
                logger.exception("Unexpected error while proxying")
                raise GatewayException(str(e)) from e

            if LOG_INCLUDE_RESPONSE_CONTENT:
                logger.debug(f"HTTP Response {truncate_content(payload)}")
            return Response(content=payload, media_type="application/json")

        if request.method in ("OPTIONS", "GET"):
            return Response(status_code=200)

        raise UnsupportedMethod(request.method)

    # No method filter: every verb reaches http_endpoint, unknown ones get 502
    app.add_route("/{path:path}", http_endpoint, include_in_schema=False)

    # ========================================================================
    # WEBSOCKET FRONT END
    # ========================================================================

    @app.websocket("/{path:path}")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        try:
            conn = ws_manager.connect()
        except RPCError as e:
            logger.warning("Rejecting WebSocket connection: %s", e.message)
            await websocket.close(code=WS_CLOSE_TRY_AGAIN_LATER)
            return

        writer = asyncio.create_task(ws_manager.run_writer(conn, websocket.send_text))
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")
                ws_manager.handle_message(conn, raw)
        finally:
            await ws_manager.disconnect(conn)
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)

    return app

"""
ethgate WebSocket Upstream Client

One shared WebSocket to the upstream carries every proxied call plus the
``eth_subscription`` notifications for subscriptions opened through it.

Calls from many gateway clients are multiplexed over the socket, so each
request is re-numbered with an internal id and the caller's id is restored
on the response.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
from typing import Any, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..exceptions import UpstreamTransportError
from ..logger import get_logger
from .base import UpstreamClient

logger = get_logger(__name__)

SUBSCRIPTION_NOTIFICATION = "eth_subscription"


class WebSocketUpstreamClient(UpstreamClient):
    """JSON-RPC over a persistent WebSocket, with lazy reconnect."""

    def __init__(self, url: str, chain_id: str = "default", timeout: float = 60.0):
        super().__init__(url, chain_id, timeout)
        self._ws: Optional[Any] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._connect_lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()

    @property
    def supports_notifications(self) -> bool:
        return True

    @property
    def connected(self) -> bool:
        return self._ws is not None

    # -- Connection lifecycle -----------------------------------------------

    async def connect(self) -> None:
        async with self._connect_lock:
            if self._ws is not None:
                return
            try:
                ws = await websockets.connect(
                    self.url,
                    open_timeout=self.timeout,
                    max_size=None,
                )
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                raise UpstreamTransportError(f"Cannot connect to upstream {self.url}: {e}") from e

            self._ws = ws
            self._reader_task = asyncio.create_task(self._read_loop(ws))
            logger.info("Connected to upstream %s (chain=%s)", self.url, self.chain_id)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None
        if ws is not None:
            await ws.close()
        self._fail_pending(UpstreamTransportError("Upstream connection closed"))

    # -- Calls --------------------------------------------------------------

    async def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        await self.connect()
        ws = self._ws
        if ws is None:
            raise UpstreamTransportError("Upstream connection lost before send")

        upstream_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[upstream_id] = future

        try:
            async with self._send_lock:
                await ws.send(json.dumps(dict(request, id=upstream_id)))
            response = await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamTransportError(
                f"Upstream call {request.get('method')} timed out after {self.timeout}s"
            ) from e
        except (ConnectionClosed, OSError) as e:
            raise UpstreamTransportError(f"Upstream connection failed: {e}") from e
        finally:
            self._pending.pop(upstream_id, None)

        return dict(response, id=request.get("id"))

    # -- Reader -------------------------------------------------------------

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Dropping undecodable upstream frame")
                    continue
                self._route(message)
        except ConnectionClosed as e:
            logger.warning("Upstream connection closed: %s", e)
        finally:
            if self._ws is ws:
                self._ws = None
                if self.listener_count:
                    logger.warning("Upstream subscriptions were lost with the connection")
                self._fail_pending(UpstreamTransportError("Upstream connection lost"))

    def _route(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.warning("Dropping unexpected upstream frame: %r", message)
            return

        if message.get("method") == SUBSCRIPTION_NOTIFICATION:
            self._emit(message)
            return

        future = self._pending.get(message.get("id"))
        if future is None or future.done():
            logger.debug("No pending call for upstream response id=%s", message.get("id"))
            return
        future.set_result(message)

    def _fail_pending(self, error: Exception) -> None:
        for future in list(self._pending.values()):
            if not future.done():
                future.set_exception(error)

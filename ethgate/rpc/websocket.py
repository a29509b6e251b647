"""
ethgate WebSocket Connection Manager

Per-connection bookkeeping for the WebSocket front end:

  - every inbound frame is proxied like an HTTP POST body, in its own task
  - subscription ids returned by ``eth_subscribe`` are owned by the
    connection that opened them; pushes that overtake the subscribe
    response are held until the id is known
  - one upstream notification listener per connection, registered at
    connect time and removed at disconnect
  - all outbound frames (responses and notifications) go through a single
    queue drained by one writer, so frames never interleave

This class is transport-agnostic; the actual socket I/O lives in
``ethgate.gateway.main``.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..constants import (
    JSONRPC_VERSION,
    LOG_INCLUDE_REQUEST_CONTENT,
    LOG_INCLUDE_RESPONSE_CONTENT,
)
from ..exceptions import MalformedRequest, UpstreamError
from ..logger import get_logger, truncate_content
from ..upstream.base import UpstreamClient
from .server import ProxyServer, RPCError, RPCErrorCode, error_response

logger = get_logger(__name__)

# Per-connection cap on notifications held for an in-flight eth_subscribe
EARLY_NOTIFICATION_LIMIT = 64


@dataclass
class WSConnection:
    """Tracks one WebSocket client connection."""
    id: str
    subscriptions: Set[str] = field(default_factory=set)
    outbound: asyncio.Queue = field(default_factory=asyncio.Queue)
    tasks: Set[asyncio.Task] = field(default_factory=set)
    created_at: float = field(default_factory=time.time)
    remove_listener: Optional[Callable[[], None]] = None
    closed: bool = False
    # eth_subscribe calls awaiting their response
    pending_subscribes: int = 0
    # Pushes for not-yet-owned subscription ids, held while a subscribe is in flight
    early_notifications: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    @property
    def subscription_count(self) -> int:
        return len(self.subscriptions)


class WebSocketManager:
    """
    Manages WebSocket connections and their upstream subscriptions.

    Args:
        proxy: Request pipeline shared with the HTTP front end
        upstream: Upstream client whose notifications are forwarded
        max_connections: Concurrent connection cap
    """

    def __init__(
        self,
        proxy: ProxyServer,
        upstream: UpstreamClient,
        max_connections: int = 1000,
    ):
        self.proxy = proxy
        self.upstream = upstream
        self.max_connections = max_connections

        self._connections: Dict[str, WSConnection] = {}

        # Stats
        self.total_connections_served: int = 0
        self.total_notifications_dispatched: int = 0

    # -- Connection lifecycle -----------------------------------------------

    def connect(self) -> WSConnection:
        """
        Register a new connection and its notification listener.

        Raises:
            RPCError: if max connections exceeded
        """
        if len(self._connections) >= self.max_connections:
            raise RPCError(
                RPCErrorCode.LIMIT_EXCEEDED,
                f"Max WebSocket connections reached ({self.max_connections})"
            )

        conn = WSConnection(id=uuid.uuid4().hex[:16])
        conn.remove_listener = self.upstream.add_listener(partial(self._on_notification, conn))
        self._connections[conn.id] = conn
        self.total_connections_served += 1
        logger.info("WS connect: %s (active=%d)", conn.id, len(self._connections))
        return conn

    async def disconnect(self, conn: WSConnection) -> None:
        """
        Tear a connection down: listener, in-flight requests, subscriptions.
        """
        if self._connections.pop(conn.id, None) is None:
            return

        conn.closed = True
        conn.early_notifications.clear()
        if conn.remove_listener is not None:
            conn.remove_listener()
            conn.remove_listener = None

        for task in list(conn.tasks):
            task.cancel()
        if conn.tasks:
            await asyncio.gather(*conn.tasks, return_exceptions=True)

        for sub_id in list(conn.subscriptions):
            await self._unsubscribe_upstream(sub_id)
        conn.subscriptions.clear()

        logger.info("WS disconnect: %s (active=%d)", conn.id, len(self._connections))

    async def _unsubscribe_upstream(self, sub_id: str) -> None:
        request = {
            "id": f"ethgate-unsubscribe-{sub_id}",
            "jsonrpc": JSONRPC_VERSION,
            "method": "eth_unsubscribe",
            "params": [sub_id],
        }
        try:
            await self.upstream.send(request)
        except UpstreamError as e:
            logger.debug("Could not release upstream subscription %s: %s", sub_id, e.message)

    # -- Inbound ------------------------------------------------------------

    def handle_message(self, conn: WSConnection, raw: str) -> asyncio.Task:
        """Proxy one inbound frame in the background; the reply is queued on ``conn``."""
        task = asyncio.create_task(self._process_message(conn, raw))
        conn.tasks.add(task)
        task.add_done_callback(conn.tasks.discard)
        return task

    async def _process_message(self, conn: WSConnection, raw: str) -> None:
        if LOG_INCLUDE_REQUEST_CONTENT:
            logger.debug("WS %s --> %s", conn.id, truncate_content(raw))

        request: Dict[str, Any] = {}
        subscribing = False
        try:
            request = self.proxy.normalize(raw)
            if request.get("method") == "eth_subscribe":
                subscribing = True
                conn.pending_subscribes += 1
            response = await self.proxy.process(request)
        except (MalformedRequest, UpstreamError) as e:
            logger.warning("WS %s request failed: %s", conn.id, e)
            response = error_response(e, request.get("id")).to_dict()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("WS %s unexpected error", conn.id)
            response = error_response(e, request.get("id")).to_dict()
        finally:
            if subscribing:
                conn.pending_subscribes -= 1

        new_sub_id = self._track_subscription(conn, request, response)
        self.send(conn, response)

        if new_sub_id is not None:
            for notification in conn.early_notifications.pop(new_sub_id, []):
                self._forward(conn, notification)
        if conn.pending_subscribes == 0:
            conn.early_notifications.clear()

    def _track_subscription(
        self,
        conn: WSConnection,
        request: Dict[str, Any],
        response: Dict[str, Any],
    ) -> Optional[str]:
        """Update ``conn``'s owned ids; returns a newly owned subscription id."""
        method = request.get("method")
        result = response.get("result")

        if method == "eth_subscribe" and isinstance(result, str):
            conn.subscriptions.add(result)
            logger.debug("WS subscribe: conn=%s sub=%s", conn.id, result)
            return result
        if method == "eth_unsubscribe" and result is True:
            params = request.get("params")
            if isinstance(params, list) and params:
                conn.subscriptions.discard(params[0])
                logger.debug("WS unsubscribe: conn=%s sub=%s", conn.id, params[0])
        return None

    # -- Outbound -----------------------------------------------------------

    def send(self, conn: WSConnection, payload: Dict[str, Any]) -> None:
        """Queue a payload for the connection's writer."""
        if conn.closed:
            return
        message = json.dumps(payload)
        if LOG_INCLUDE_RESPONSE_CONTENT:
            logger.debug("WS %s <-- %s", conn.id, truncate_content(message))
        conn.outbound.put_nowait(message)

    async def run_writer(self, conn: WSConnection, send_fn: Callable[[str], Awaitable[Any]]) -> None:
        """
        Drain ``conn``'s outbound queue into ``send_fn`` until cancelled.

        A failing ``send_fn`` (peer gone) marks the connection closed and
        ends the writer; nothing is queued for it afterwards.
        """
        while True:
            message = await conn.outbound.get()
            try:
                await send_fn(message)
            except Exception as e:
                logger.info("WS %s send failed, closing: %s", conn.id, e)
                conn.closed = True
                conn.early_notifications.clear()
                while not conn.outbound.empty():
                    conn.outbound.get_nowait()
                return

    def _on_notification(self, conn: WSConnection, notification: Dict[str, Any]) -> None:
        if conn.closed:
            return
        params = notification.get("params")
        if not isinstance(params, dict):
            return

        sub_id = params.get("subscription")
        if sub_id in conn.subscriptions:
            self._forward(conn, notification)
        elif conn.pending_subscribes and isinstance(sub_id, str):
            # May belong to a subscribe whose response is still on its way
            if sum(map(len, conn.early_notifications.values())) < EARLY_NOTIFICATION_LIMIT:
                conn.early_notifications.setdefault(sub_id, []).append(notification)

    def _forward(self, conn: WSConnection, notification: Dict[str, Any]) -> None:
        self.send(conn, self.proxy.patcher.reshape_notification(notification))
        self.total_notifications_dispatched += 1

    # -- Diagnostics --------------------------------------------------------

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    @property
    def active_subscriptions(self) -> int:
        return sum(c.subscription_count for c in self._connections.values())

"""
ethgate Upstream Client Interface

The gateway talks to the chain through an ``UpstreamClient``: one call to
send a JSON-RPC request and get the response envelope back, plus a stream of
asynchronous ``eth_subscription`` notifications delivered to listeners.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

from ..logger import get_logger

logger = get_logger(__name__)

# Listener for upstream push notifications. Called on the event loop thread.
NotificationListener = Callable[[Dict[str, Any]], None]


class UpstreamClient(ABC):
    """
    Base class for upstream RPC clients.

    Implementations raise ``UpstreamTransportError`` for failures worth
    retrying and ``UpstreamRejectedError`` for everything else. JSON-RPC
    error envelopes are *responses*, not exceptions, and are returned as-is.
    """

    def __init__(self, url: str, chain_id: str = "default", timeout: float = 60.0):
        self.url = url
        self.chain_id = chain_id
        self.timeout = timeout
        self._listeners: List[NotificationListener] = []

    async def connect(self) -> None:
        """Open the underlying transport. Optional; ``send`` connects lazily."""

    async def close(self) -> None:
        """Release the underlying transport."""

    @abstractmethod
    async def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send one JSON-RPC request upstream.

        Args:
            request: JSON-RPC request object

        Returns:
            JSON-RPC response object, ``id`` mirroring the request

        Raises:
            UpstreamTransportError: transient failure
            UpstreamRejectedError: non-transient failure
        """

    @property
    def supports_notifications(self) -> bool:
        return False

    # -- Notifications ------------------------------------------------------

    def add_listener(self, listener: NotificationListener) -> Callable[[], None]:
        """
        Register a notification listener.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _emit(self, notification: Dict[str, Any]) -> None:
        """Deliver a notification to every registered listener."""
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed")

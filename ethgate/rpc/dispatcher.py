"""
ethgate Retrying Dispatcher

Sends one normalized request to the upstream, retrying transient failures.
Two methods never reach the upstream:

- ``net_listening`` always answers ``true`` (Remix probes it before
  anything else)
- ``eth_getBlockByNumber("0x0")`` is answered with the synthetic genesis block
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from ..constants import (
    JSONRPC_VERSION,
    RETRY_FACTOR,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_TIMEOUT,
    RETRY_MIN_TIMEOUT,
)
from ..exceptions import UpstreamError, UpstreamTransportError
from ..logger import get_logger
from ..upstream.base import UpstreamClient
from .genesis import genesis_block_response, is_genesis_request
from .state import GatewayState

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with a deterministic, capped exponential backoff.

    The wait before retry ``n`` (1-based) is
    ``min(min_timeout * factor ** (n - 1), max_timeout)``. With the defaults
    that is 20s, 40s, then 50s for every further retry, for at most
    ``max_attempts`` calls in total.
    """

    max_attempts: int = RETRY_MAX_ATTEMPTS
    min_timeout: float = RETRY_MIN_TIMEOUT
    max_timeout: float = RETRY_MAX_TIMEOUT
    factor: float = RETRY_FACTOR

    def delay(self, retry: int) -> float:
        """Seconds to wait before the ``retry``-th retry (1-based)."""
        return min(self.min_timeout * self.factor ** (retry - 1), self.max_timeout)

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        """Build from a ``RetryConfig`` section."""
        return cls(
            max_attempts=config.max_attempts,
            min_timeout=config.min_timeout,
            max_timeout=config.max_timeout,
            factor=config.factor,
        )


class Dispatcher:
    """
    Routes a request to a synthetic answer or the upstream.

    Args:
        upstream: Upstream RPC client
        state: Shared gateway state (subscription counter)
        policy: Retry policy for upstream calls
        sleep: Backoff wait, injectable for tests
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        state: GatewayState,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.upstream = upstream
        self.state = state
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def dispatch(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Answer one JSON-RPC request.

        Returns:
            JSON-RPC response object. Error envelopes from the upstream are
            returned unmodified.

        Raises:
            UpstreamError: upstream failed and retrying stopped
        """
        method = request.get("method")

        if method == "net_listening":
            return {"id": request.get("id"), "jsonrpc": JSONRPC_VERSION, "result": True}

        if is_genesis_request(request):
            logger.debug("Serving synthetic genesis block for id=%s", request.get("id"))
            return genesis_block_response(request.get("id"))

        if method == "eth_subscribe":
            number = self.state.next_subscription_number()
            logger.debug("eth_subscribe #%d", number)

        return await self._call_with_retry(request)

    async def _call_with_retry(self, request: Dict[str, Any]) -> Dict[str, Any]:
        method = request.get("method")
        attempt = 1
        while True:
            try:
                return await self.upstream.send(request)
            except UpstreamTransportError as e:
                if attempt >= self.policy.max_attempts:
                    logger.error(
                        "Upstream call %s failed after %d attempts: %s",
                        method, attempt, e.message,
                    )
                    raise UpstreamError(
                        f"Upstream call {method} failed after {attempt} attempts: {e.message}",
                        data=e.data,
                    ) from e
                delay = self.policy.delay(attempt)
                logger.warning(
                    "Upstream call %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    method, attempt, self.policy.max_attempts, e.message, delay,
                )
                await self._sleep(delay)
                attempt += 1
            except UpstreamError as e:
                logger.warning("Upstream rejected %s: %s", method, e.message)
                raise UpstreamError(e.message, data=e.data) from e

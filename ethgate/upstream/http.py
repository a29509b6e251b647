"""
ethgate HTTP Upstream Client

Request/response only; HTTP upstreams cannot push subscription notifications.
"""

import json
from typing import Any, Dict, Optional

import httpx

from ..exceptions import UpstreamRejectedError, UpstreamTransportError
from ..logger import get_logger
from .base import UpstreamClient

logger = get_logger(__name__)

# Status codes that mean "try again later" rather than "no"
RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


class HTTPUpstreamClient(UpstreamClient):
    """JSON-RPC over HTTP POST using a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        url: str,
        chain_id: str = "default",
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(url, chain_id, timeout)
        self._client = http_client

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        if self._client is None:
            await self.connect()

        try:
            response = await self._client.post(self.url, json=request)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise UpstreamTransportError(f"Upstream unreachable: {e}") from e

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise UpstreamTransportError(
                f"Upstream returned HTTP {response.status_code}",
                data=response.text or None,
            )
        if response.is_error:
            raise UpstreamRejectedError(
                f"Upstream returned HTTP {response.status_code}",
                data=response.text or None,
            )

        try:
            payload = response.json()
        except json.JSONDecodeError as e:
            raise UpstreamRejectedError(f"Invalid JSON from upstream: {e}") from e

        if not isinstance(payload, dict):
            raise UpstreamRejectedError(f"Unexpected upstream payload: {payload!r}")
        return payload

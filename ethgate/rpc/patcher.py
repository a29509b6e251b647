"""
ethgate Response Patcher

Fills the block fields the upstream leaves out, keeps the receipt-log cache
current, and reshapes subscription notifications into something block
explorers accept. Patching works on copies and only adds or overwrites
fields; nothing the upstream sent is removed.
"""

from typing import Any, Dict

from ..constants import BLOCK_FILLER_FIELDS, NOTIFICATION_FILLER_FIELDS
from ..logger import get_logger
from .state import GatewayState

logger = get_logger(__name__)


class ResponsePatcher:
    """Method-conditional response rewriting backed by the gateway state."""

    def __init__(self, state: GatewayState):
        self.state = state

    def patch(self, request: Dict[str, Any], response: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply the patch for ``request['method']`` to ``response``.

        Error envelopes and ``null`` results are returned unchanged.
        """
        if not isinstance(response, dict) or not isinstance(response.get("result"), dict):
            return response

        method = request.get("method")
        if method == "eth_getBlockByNumber":
            return self._patch_block(response)
        if method == "eth_getTransactionReceipt":
            self._record_receipt(response)
        return response

    def _patch_block(self, response: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(response["result"])
        result.update(BLOCK_FILLER_FIELDS)
        result["transactions"] = self.state.tx_cache.get(result.get("hash"))
        return dict(response, result=result)

    def _record_receipt(self, response: Dict[str, Any]) -> None:
        logs = response["result"].get("logs") or []
        written = self.state.tx_cache.record_receipt_logs(logs)
        if written:
            logger.debug("Cached receipt logs for %d block(s)", written)

    def reshape_notification(self, notification: Dict[str, Any]) -> Dict[str, Any]:
        """
        Rewrite the block-like result of an ``eth_subscription`` push.

        The upstream reports the new block's hash in ``parentHash``, so it is
        moved to ``hash``; the other header fields are filled with constants
        and ``number`` comes from the subscription counter.
        """
        params = notification.get("params")
        if not isinstance(params, dict) or not isinstance(params.get("result"), dict):
            return notification

        upstream_result = params["result"]
        result = dict(upstream_result)
        result["hash"] = upstream_result.get("parentHash")
        result.update(NOTIFICATION_FILLER_FIELDS)
        result["number"] = hex(self.state.subscription_number)

        return dict(notification, params=dict(params, result=result))

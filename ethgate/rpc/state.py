"""
ethgate Gateway State

The only state that outlives a single request: the receipt-log cache and the
subscription counter. One instance is owned by the app and handed to every
component that needs it.
"""

import threading
from typing import Optional

from .cache import TxCache


class GatewayState:
    """Shared mutable gateway state, internally synchronized."""

    def __init__(self, tx_cache: Optional[TxCache] = None):
        self.tx_cache = tx_cache if tx_cache is not None else TxCache()
        self._subscription_count = 0
        self._lock = threading.Lock()

    def next_subscription_number(self) -> int:
        """Count one more ``eth_subscribe`` call and return the new value."""
        with self._lock:
            self._subscription_count += 1
            return self._subscription_count

    @property
    def subscription_number(self) -> int:
        """
        Current subscription count.

        Only used to give pushed notifications a plausible ``number``; it is
        not a block height.
        """
        with self._lock:
            return self._subscription_count

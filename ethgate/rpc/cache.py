"""
ethgate Transaction Cache

Maps block hash → receipt logs. Written whenever an
``eth_getTransactionReceipt`` response is proxied, read when
``eth_getBlockByNumber`` needs a ``transactions`` list the upstream never
sends.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass
class _Entry:
    logs: List[Dict[str, Any]]
    stored_at: float


class TxCache:
    """
    Bounded, thread-safe block-hash → logs map.

    Eviction is least-recently-used once ``max_entries`` is reached, plus an
    optional ``ttl`` after which entries read as absent.

    Args:
        max_entries: Capacity; ``None`` disables the bound.
        ttl: Entry lifetime in seconds; ``None`` disables expiry.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        max_entries: Optional[int] = 10_000,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = threading.Lock()
        self.evictions = 0

    def put(self, block_hash: str, logs: List[Dict[str, Any]]) -> None:
        """Store (or overwrite) the logs recorded for ``block_hash``."""
        with self._lock:
            self._entries[block_hash] = _Entry(logs=list(logs), stored_at=self._clock())
            self._entries.move_to_end(block_hash)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
                    self.evictions += 1

    def get(self, block_hash: Optional[str]) -> List[Dict[str, Any]]:
        """Logs for ``block_hash``, or an empty list. Does not remove the entry."""
        if block_hash is None:
            return []
        with self._lock:
            entry = self._entries.get(block_hash)
            if entry is None:
                return []
            if self._expired(entry):
                del self._entries[block_hash]
                self.evictions += 1
                return []
            self._entries.move_to_end(block_hash)
            return list(entry.logs)

    def record_receipt_logs(self, logs: List[Dict[str, Any]]) -> int:
        """
        Cache a receipt's logs, grouped by their ``blockHash``.

        Each block hash present in ``logs`` is overwritten with the logs of
        this receipt that carry it.

        Returns:
            Number of block hashes written
        """
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for log in logs:
            if not isinstance(log, dict):
                continue
            block_hash = log.get("blockHash")
            if block_hash is None:
                continue
            grouped.setdefault(block_hash, []).append(log)

        for block_hash, block_logs in grouped.items():
            self.put(block_hash, block_logs)
        return len(grouped)

    def _expired(self, entry: _Entry) -> bool:
        return self.ttl is not None and self._clock() - entry.stored_at > self.ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, block_hash: str) -> bool:
        with self._lock:
            entry = self._entries.get(block_hash)
            return entry is not None and not self._expired(entry)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

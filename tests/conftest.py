"""Shared fixtures: an in-memory upstream and a gateway app wired to it."""

import asyncio
import copy
import itertools
from typing import Any, Dict, List

import pytest

from ethgate.config import GatewayConfig
from ethgate.gateway import create_app
from ethgate.rpc.dispatcher import RetryPolicy
from ethgate.rpc.state import GatewayState
from ethgate.upstream.base import UpstreamClient


class FakeUpstream(UpstreamClient):
    """
    Scriptable upstream.

    - ``results[method]`` is returned as the ``result`` of that method
    - ``errors[method]`` is returned as a JSON-RPC error envelope
    - ``failures`` are raised, in order, by the next calls to ``send``
    - ``early_push`` results are pushed before an ``eth_subscribe`` returns,
      ahead of its response
    - ``auto_push`` results are pushed as notifications after each
      ``eth_subscribe``
    """

    def __init__(self):
        super().__init__("ws://upstream.test/websocket", chain_id="test", timeout=1.0)
        self.calls: List[Dict[str, Any]] = []
        self.results: Dict[str, Any] = {}
        self.errors: Dict[str, Dict[str, Any]] = {}
        self.failures: List[Exception] = []
        self.early_push: List[Dict[str, Any]] = []
        self.auto_push: List[Dict[str, Any]] = []
        self.connected = False
        self.closed = False
        self._sub_ids = itertools.count(1)

    @property
    def supports_notifications(self) -> bool:
        return True

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    async def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(request)
        if self.failures:
            raise self.failures.pop(0)

        method = request.get("method")
        envelope = {"id": request.get("id"), "jsonrpc": "2.0"}
        if method in self.errors:
            envelope["error"] = self.errors[method]
            return envelope

        if method == "eth_subscribe":
            sub_id = f"0x{next(self._sub_ids):032x}"
            for result in self.early_push:
                self.push(sub_id, copy.deepcopy(result))
            for result in self.auto_push:
                asyncio.get_running_loop().call_soon(self.push, sub_id, copy.deepcopy(result))
            envelope["result"] = sub_id
        elif method == "eth_unsubscribe":
            envelope["result"] = True
        else:
            envelope["result"] = copy.deepcopy(self.results.get(method))
        return envelope

    def push(self, sub_id: str, result: Any) -> None:
        self._emit({
            "jsonrpc": "2.0",
            "method": "eth_subscription",
            "params": {"subscription": sub_id, "result": result},
        })

    def methods_called(self) -> List[str]:
        return [c.get("method") for c in self.calls]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def gateway_state():
    return GatewayState()


@pytest.fixture
def fast_retry():
    """Retry policy without real waiting."""
    return RetryPolicy(max_attempts=3, min_timeout=0.0, max_timeout=0.0)


@pytest.fixture
def app(upstream, gateway_state, fast_retry):
    return create_app(
        GatewayConfig(),
        upstream=upstream,
        state=gateway_state,
        retry_policy=fast_retry,
    )


@pytest.fixture
def sample_block():
    """Block as the upstream returns it: header fields only."""
    return {
        "number": "0x2a",
        "hash": "0xaa",
        "parentHash": "0x99",
        "stateRoot": "0x0600e7a20ba07336907077114036d91a8de1c1c4d3e646faff642044a8dd16b2",
        "transactionsRoot": "0x56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421",
        "receiptsRoot": "0x56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421",
        "logsBloom": "0x" + "00" * 256,
        "uncles": [],
    }


@pytest.fixture
def sample_receipt():
    return {
        "transactionHash": "0xt1",
        "blockHash": "0xaa",
        "blockNumber": "0x2a",
        "status": "0x1",
        "logs": [
            {"logIndex": "0x0", "blockHash": "0xaa", "transactionHash": "0xt1", "data": "0x01"},
            {"logIndex": "0x1", "blockHash": "0xaa", "transactionHash": "0xt1", "data": "0x02"},
        ],
    }

"""
End-to-end tests for the HTTP and WebSocket front ends.
"""

import json

import pytest
from fastapi.testclient import TestClient

from ethgate.constants import CORS_HEADERS
from ethgate.exceptions import UpstreamRejectedError, UpstreamTransportError


@pytest.fixture
def client(app):
    return TestClient(app)


def rpc(method, params=None, id=1):
    return {"id": id, "jsonrpc": "2.0", "method": method, "params": params or []}


def assert_cors(response):
    for name, value in CORS_HEADERS.items():
        assert response.headers[name] == value


class TestHTTPVerbs:

    def test_options_preflight(self, client):
        response = client.options("/")
        assert response.status_code == 200
        assert response.content == b""
        assert_cors(response)

    def test_get(self, client):
        response = client.get("/anything")
        assert response.status_code == 200
        assert response.content == b""

    @pytest.mark.parametrize("verb", ["put", "delete", "patch"])
    def test_other_verbs(self, client, verb):
        response = getattr(client, verb)("/")
        assert response.status_code == 502
        assert response.content == b""
        assert_cors(response)

    @pytest.mark.parametrize("verb", ["TRACE", "PROPFIND", "HEAD", "BREW"])
    def test_unregistered_verbs(self, client, verb):
        response = client.request(verb, "/some/path")
        assert response.status_code == 502
        assert response.content == b""
        assert_cors(response)


class TestHTTPPost:

    def test_proxied(self, client, upstream):
        upstream.results["eth_chainId"] = "0x7a69"
        response = client.post("/", content=json.dumps(rpc("eth_chainId")))
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"id": 1, "jsonrpc": "2.0", "result": "0x7a69"}
        assert_cors(response)

    def test_any_path(self, client, upstream):
        upstream.results["eth_blockNumber"] = "0x2a"
        response = client.post("/rpc/v1", content=json.dumps(rpc("eth_blockNumber")))
        assert response.json()["result"] == "0x2a"

    def test_idempotent(self, client, upstream):
        upstream.results["eth_chainId"] = "0x7a69"
        body = json.dumps(rpc("eth_chainId"))
        assert client.post("/", content=body).json() == client.post("/", content=body).json()

    def test_batch_serves_first_only(self, client, upstream):
        upstream.results["eth_blockNumber"] = "0x2a"
        body = json.dumps([rpc("eth_blockNumber", id=1), rpc("eth_gasPrice", id=2)])
        response = client.post("/", content=body)
        assert response.json() == {"id": 1, "jsonrpc": "2.0", "result": "0x2a"}
        assert upstream.methods_called() == ["eth_blockNumber"]

    def test_net_listening_local(self, client, upstream):
        upstream.failures = [UpstreamTransportError("down")] * 10
        response = client.post("/", content=json.dumps(rpc("net_listening", id=67)))
        assert response.json() == {"id": 67, "jsonrpc": "2.0", "result": True}
        assert upstream.calls == []

    def test_genesis_local(self, client, upstream):
        response = client.post("/", content=json.dumps(rpc("eth_getBlockByNumber", ["0x0", False])))
        assert response.json()["result"]["number"] == "0x0"
        assert upstream.calls == []

    def test_object_params_block_request(self, client, upstream):
        upstream.results["eth_getBlockByNumber"] = None
        body = json.dumps(rpc("eth_getBlockByNumber", {"block": "0x0"}))
        response = client.post("/", content=body)
        assert response.status_code == 200
        assert response.json()["result"] is None
        assert upstream.methods_called() == ["eth_getBlockByNumber"]

    def test_upstream_error_envelope_passthrough(self, client, upstream):
        upstream.errors["eth_call"] = {"code": -32000, "message": "execution reverted"}
        response = client.post("/", content=json.dumps(rpc("eth_call")))
        assert response.status_code == 200
        assert response.json()["error"]["message"] == "execution reverted"


class TestHTTPErrors:

    def test_malformed_body(self, client, upstream):
        response = client.post("/", content="{not json")
        assert response.status_code == 500
        assert response.text
        assert upstream.calls == []
        assert_cors(response)

    def test_empty_batch(self, client):
        response = client.post("/", content="[]")
        assert response.status_code == 500
        assert "Empty batch" in response.text

    def test_upstream_error_data(self, client, upstream):
        upstream.failures = [UpstreamRejectedError("HTTP 400", data={"code": -1, "message": "nope"})]
        response = client.post("/", content=json.dumps(rpc("eth_blockNumber")))
        assert response.status_code == 500
        assert json.loads(response.text) == {"code": -1, "message": "nope"}

    def test_retries_exhausted(self, client, upstream, fast_retry):
        upstream.failures = [UpstreamTransportError("down")] * fast_retry.max_attempts
        response = client.post("/", content=json.dumps(rpc("eth_blockNumber")))
        assert response.status_code == 500
        assert "failed after 3 attempts" in response.text
        assert len(upstream.calls) == fast_retry.max_attempts

    def test_transient_then_success(self, client, upstream):
        upstream.results["eth_blockNumber"] = "0x2a"
        upstream.failures = [UpstreamTransportError("down")]
        response = client.post("/", content=json.dumps(rpc("eth_blockNumber")))
        assert response.status_code == 200
        assert response.json()["result"] == "0x2a"


class TestReceiptBlockFlow:

    def test_block_gets_receipt_logs(self, client, upstream, sample_block, sample_receipt):
        upstream.results["eth_getBlockByNumber"] = sample_block
        upstream.results["eth_getTransactionReceipt"] = sample_receipt
        block_request = json.dumps(rpc("eth_getBlockByNumber", ["0x2a", True]))

        before = client.post("/", content=block_request).json()["result"]
        assert before["transactions"] == []
        assert before["difficulty"] == "0x01"

        receipt = client.post("/", content=json.dumps(rpc("eth_getTransactionReceipt", ["0xt1"]))).json()
        assert receipt["result"] == sample_receipt

        after = client.post("/", content=block_request).json()["result"]
        assert after["transactions"] == sample_receipt["logs"]


class TestWebSocket:

    def test_request_response(self, client, upstream):
        upstream.results["eth_blockNumber"] = "0x2a"
        with client.websocket_connect("/") as ws:
            ws.send_text(json.dumps(rpc("eth_blockNumber", id=3)))
            assert ws.receive_json() == {"id": 3, "jsonrpc": "2.0", "result": "0x2a"}

    def test_malformed_frame(self, client):
        with client.websocket_connect("/") as ws:
            ws.send_text("garbage")
            assert ws.receive_json()["error"]["code"] == -32700

    def test_subscription_push(self, client, upstream, gateway_state):
        upstream.auto_push = [{"parentHash": "0xnewhead"}]
        with client.websocket_connect("/") as ws:
            ws.send_text(json.dumps(rpc("eth_blockNumber", id=1)))
            ws.receive_json()
            ws.send_text(json.dumps(rpc("eth_subscribe", ["newHeads"], id=2)))
            sub = ws.receive_json()
            assert sub["id"] == 2
            assert upstream.listener_count == 1

            note = ws.receive_json()
            assert note["method"] == "eth_subscription"
            assert note["params"]["subscription"] == sub["result"]
            assert note["params"]["result"]["hash"] == "0xnewhead"
            assert note["params"]["result"]["parentHash"] == "0x0"
            assert note["params"]["result"]["number"] == hex(gateway_state.subscription_number)

            # a follow-up request is still answered normally
            ws.send_text(json.dumps(rpc("net_listening", id=3)))
            assert ws.receive_json() == {"id": 3, "jsonrpc": "2.0", "result": True}

    def test_push_ahead_of_subscribe_response(self, client, upstream):
        upstream.early_push = [{"parentHash": "0xearly"}]
        with client.websocket_connect("/") as ws:
            ws.send_text(json.dumps(rpc("eth_subscribe", ["newHeads"], id=9)))
            sub = ws.receive_json()
            assert sub["id"] == 9

            note = ws.receive_json()
            assert note["params"]["subscription"] == sub["result"]
            assert note["params"]["result"]["hash"] == "0xearly"

"""
ethgate Synthetic Genesis Block

The upstream cannot serve block 0, yet explorers and indexers insist on
walking the chain from it. ``eth_getBlockByNumber("0x0")`` is answered from
this template instead.
"""

import secrets
from types import MappingProxyType
from typing import Any, Dict, Union

from ..constants import JSONRPC_VERSION

GENESIS_BLOCK_NUMBER = "0x0"

GENESIS_BLOCK_TEMPLATE = MappingProxyType({
    "number": GENESIS_BLOCK_NUMBER,
    "hash": "0x627f66a4224d1e76fe3615bb682438967a9bf7f8f5127696e8418cdaa46cb306",
    "parentHash": None,  # randomized per call
    "mixHash": "0x" + "00" * 32,
    "nonce": "0x0000000000000000",
    "sha3Uncles": "0x1dcc4de8dec75d7aab85b567b6ccd41ad312451b948a7413f0a142fd40d49347",
    "logsBloom": "0x" + "00" * 256,
    "transactionsRoot": "0x56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421",
    "stateRoot": "0x0600e7a20ba07336907077114036d91a8de1c1c4d3e646faff642044a8dd16b2",
    "receiptsRoot": "0x56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421",
    "miner": "0x0000000000000000000000000000000000000000",
    "difficulty": "0x01",
    "totalDifficulty": "0x01",
    "extraData": "0x01",
    "size": "0x03e8",
    "gasLimit": "0x429ebf98",
    "gasUsed": "0x01",
    "timestamp": "0x5c91580a",
    "transactions": (),
    "uncles": (),
})


def is_genesis_request(request: Dict[str, Any]) -> bool:
    """True for ``eth_getBlockByNumber`` targeting block ``0x0``."""
    if request.get("method") != "eth_getBlockByNumber":
        return False
    params = request.get("params")
    return isinstance(params, list) and bool(params) and params[0] == GENESIS_BLOCK_NUMBER


def genesis_block() -> Dict[str, Any]:
    """
    A fresh genesis block dict.

    ``parentHash`` is 32 random bytes on every call; it is a placeholder and
    not stable across queries.
    """
    block = dict(GENESIS_BLOCK_TEMPLATE)
    block["parentHash"] = "0x" + secrets.token_hex(32)
    block["transactions"] = []
    block["uncles"] = []
    return block


def genesis_block_response(request_id: Union[str, int, None]) -> Dict[str, Any]:
    """JSON-RPC response envelope carrying the synthetic genesis block."""
    return {
        "id": request_id,
        "jsonrpc": JSONRPC_VERSION,
        "result": genesis_block(),
    }

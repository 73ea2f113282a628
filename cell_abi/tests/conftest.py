from __future__ import annotations

import json
from typing import Any, Dict

import pytest

from cell_abi.abi.contract import Contract
from cell_abi.address import Address
from cell_abi.config import load_config


@pytest.fixture(autouse=True)
def _fresh_config():
    """Each test sees env-driven config re-read from a clean cache."""
    load_config.cache_clear()
    yield
    load_config.cache_clear()


WALLET_ABI: Dict[str, Any] = {
    "ABI version": 2,
    "version": "2.2",
    "header": ["pubkey", "time", "expire"],
    "functions": [
        {
            "name": "transfer",
            "inputs": [
                {"name": "dest", "type": "address"},
                {"name": "value", "type": "uint128"},
                {"name": "bounce", "type": "bool"},
            ],
            "outputs": [],
        },
        {
            "name": "burn",
            "inputs": [{"name": "amount", "type": "uint64"}],
            "outputs": [{"name": "remaining", "type": "uint64"}],
        },
        {
            "name": "getOwners",
            "inputs": [],
            "outputs": [
                {
                    "name": "owners",
                    "type": "map(uint256,tuple)",
                    "components": [
                        {"name": "index", "type": "uint8"},
                        {"name": "weight", "type": "uint16"},
                    ],
                }
            ],
        },
    ],
    "events": [
        {
            "name": "Transferred",
            "inputs": [
                {"name": "to", "type": "address"},
                {"name": "value", "type": "uint128"},
            ],
        },
        {"name": "Burned", "inputs": [{"name": "amount", "type": "uint64"}]},
        {"name": "Note", "inputs": [{"name": "text", "type": "string"}]},
    ],
    "data": [{"key": 1, "name": "owner", "type": "uint256"}],
    "fields": [
        {"name": "_pubkey", "type": "uint256"},
        {"name": "_timestamp", "type": "uint64"},
        {"name": "counter", "type": "uint32"},
    ],
}

DEST = "0:" + "11" * 32
OTHER = "-1:" + "ab" * 32


def linear_boc(n_cells: int) -> bytes:
    """Raw BOC of `n_cells` empty cells, each referencing the next."""
    body = bytearray()
    for i in range(n_cells - 1):
        body += bytes([1, 0]) + (i + 1).to_bytes(2, "big")
    body += bytes([0, 0])
    header = bytes.fromhex("b5ee9c72") + bytes([0x02, 0x04])
    header += n_cells.to_bytes(2, "big") + (1).to_bytes(2, "big") + (0).to_bytes(2, "big")
    header += len(body).to_bytes(4, "big") + (0).to_bytes(2, "big")
    return header + bytes(body)


@pytest.fixture
def abi_text() -> str:
    return json.dumps(WALLET_ABI)


@pytest.fixture
def contract(abi_text: str) -> Contract:
    return Contract.load(abi_text)


@pytest.fixture
def dest() -> Address:
    return Address(0, bytes([0x11]) * 32)

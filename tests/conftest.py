"""Shared pytest fixtures for blocksmith tests."""

import asyncio
import json
import os
import stat
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
from eth_utils import keccak, to_checksum_address

from blocksmith.abi import as_bytes


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def counter_abi(fixtures_dir: Path) -> List[Dict[str, Any]]:
    """Load the Counter ABI fixture."""
    with open(fixtures_dir / "counter_abi.json") as f:
        return json.load(f)


@pytest.fixture
def forge_output(fixtures_dir: Path) -> Dict[str, Any]:
    """Load a `forge build --format-json` output for src/Counter.sol."""
    with open(fixtures_dir / "forge_build_output.json") as f:
        return json.load(f)


class FakeRunner:
    """ProcessRunner stand-in replaying canned JSON responses."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: List[tuple] = []

    async def run_json(self, command: str, args, env=None) -> Any:
        self.calls.append((command, list(args), dict(env or {})))
        response = self.responses.pop(0)
        if callable(response):
            response = response(command, list(args))
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_runner() -> Callable[..., FakeRunner]:
    """Factory for FakeRunner instances."""
    return FakeRunner


class FakeRpc:
    """In-memory NodeRpc stand-in: records calls and mines every transaction at once."""

    endpoint = "http://fake-node"

    def __init__(self, chain: int = 31337):
        self.chain = chain
        self.balance_calls: List[tuple] = []
        self.storage_writes: List[tuple] = []
        self.sent: List[Dict[str, Any]] = []
        self.receipts: Dict[bytes, Dict[str, Any]] = {}
        self.transactions: Dict[bytes, Dict[str, Any]] = {}
        self.logs: List[Dict[str, Any]] = []  # attached to the next receipt
        self.mined = 0
        self.disconnects = 0

    async def chain_id(self) -> int:
        return self.chain

    async def automine(self) -> bool:
        return True

    async def mine(self, blocks: int = 1) -> None:
        self.mined += blocks

    async def set_balance(self, address: str, wei: int) -> None:
        await asyncio.sleep(0)
        self.balance_calls.append((address, wei))

    async def set_storage_at(self, address: str, slot: int, value: bytes) -> None:
        self.storage_writes.append((address, slot, value))

    async def get_code(self, address: str) -> bytes:
        return b"\x60\x00\x60\x00"

    def contract(self, address: Optional[str], abi, bytecode=None):
        return SimpleNamespace(address=address, abi=abi)

    async def build_deploy_transaction(self, abi, bytecode: str, args, sender: str) -> Dict[str, Any]:
        return {"from": sender, "data": bytecode, "value": 0, "args": list(args)}

    async def build_call_transaction(self, call, sender: str, value: int = 0) -> Dict[str, Any]:
        return {"from": sender, "to": call.address, "data": call.data, "value": value}

    async def send_transaction(self, account, tx: Dict[str, Any]) -> bytes:
        self.sent.append(tx)
        tx_hash = keccak(text=f"tx{len(self.sent)}")
        to = tx.get("to")
        created = None
        if to is None:
            created = to_checksum_address("0x" + keccak(text=f"contract{len(self.sent)}")[:20].hex())
        self.transactions[tx_hash] = {
            "hash": tx_hash,
            "from": tx["from"],
            "to": to,
            "input": as_bytes(tx["data"]),
            "value": tx.get("value", 0),
        }
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "from": tx["from"],
            "to": to,
            "contractAddress": created,
            "gasUsed": 21000,
            "logs": self.logs,
        }
        self.logs = []
        return tx_hash

    async def wait_for_receipt(self, tx_hash: bytes) -> Dict[str, Any]:
        return self.receipts[tx_hash]

    async def get_transaction(self, tx_hash: bytes) -> Dict[str, Any]:
        return self.transactions[tx_hash]

    async def disconnect(self) -> None:
        self.disconnects += 1


@pytest.fixture
def fake_rpc() -> FakeRpc:
    """A fresh FakeRpc for chain 31337."""
    return FakeRpc()


@pytest.fixture
def fake_node(tmp_path: Path) -> Callable[[str], str]:
    """
    Factory writing an executable script that stands in for the node binary.

    The script body is Python; the returned value is the script path.
    """

    def make(body: str) -> str:
        path = tmp_path / "fake-anvil"
        path.write_text(f"#!{sys.executable}\n{body}\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
        return str(path)

    if os.name == "nt":
        pytest.skip("executable scripts need a POSIX shebang")
    return make


@pytest.fixture
def rpc_factory() -> Callable[..., FakeRpc]:
    """Factory for FakeRpc instances on a chosen chain."""
    return FakeRpc

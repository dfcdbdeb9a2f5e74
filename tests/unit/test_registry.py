"""Unit tests for the ABI registry."""

from eth_abi import encode
from eth_utils import keccak

from blocksmith.registry import AbiRegistry

TOKEN_ABI = [
    {"type": "function", "name": "transfer", "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}]},
    {"type": "function", "name": "balanceOf", "inputs": [{"name": "owner", "type": "address"}], "stateMutability": "view"},
    {"type": "error", "name": "Insufficient", "inputs": [{"name": "need", "type": "uint256"}]},
    {"type": "event", "name": "Ping", "inputs": [{"name": "n", "type": "uint256", "indexed": False}]},
]
BOB = "0x0000000000000000000000000000000000000b0b"


def call_data(signature: str, types, values) -> bytes:
    return keccak(text=signature)[:4] + encode(types, values)


class TestIndexing:
    """Test what gets indexed."""

    def test_read_only_functions_not_indexed(self):
        """Test that only state-changing functions are decodable."""
        registry = AbiRegistry()
        registry.index(TOKEN_ABI)

        assert registry.decode_transaction(call_data("balanceOf(address)", ["address"], [BOB])) is None
        assert registry.decode_transaction(call_data("transfer(address,uint256)", ["address", "uint256"], [BOB, 1]))

    def test_decode_transaction_mapping(self):
        """Test decoding the input of a transaction mapping."""
        registry = AbiRegistry()
        registry.index(TOKEN_ABI)
        tx = {"input": call_data("transfer(address,uint256)", ["address", "uint256"], [BOB, 9])}

        desc = registry.decode_transaction(tx)

        assert desc.name == "transfer"
        assert desc.args[1] == 9

    def test_undecodable_candidates_skipped(self):
        """Test that truncated arguments give None instead of raising."""
        registry = AbiRegistry()
        registry.index(TOKEN_ABI)

        assert registry.decode_transaction(keccak(text="transfer(address,uint256)")[:4]) is None


class TestErrors:
    """Test revert data decoding."""

    def test_custom_error(self):
        """Test decoding an indexed custom error."""
        registry = AbiRegistry()
        registry.index(TOKEN_ABI)

        desc = registry.decode_error(call_data("Insufficient(uint256)", ["uint256"], [3]))

        assert desc.name == "Insufficient"
        assert desc.args == (3,)

    def test_generic_fallback(self):
        """Test that Error(string) decodes without any indexed interface."""
        desc = AbiRegistry().decode_error("0x" + call_data("Error(string)", ["string"], ["denied"]).hex())

        assert desc.reason == "denied"

    def test_unknown_error(self):
        """Test that unknown revert data gives None."""
        assert AbiRegistry().decode_error(b"\x12\x34\x56\x78") is None


class TestLogs:
    """Test event log decoding."""

    def test_decode_known_log(self):
        """Test decoding an indexed event."""
        registry = AbiRegistry()
        registry.index(TOKEN_ABI)
        log = {"topics": [keccak(text="Ping(uint256)")], "data": encode(["uint256"], [4])}

        assert registry.decode_log(log).args == (4,)

    def test_unknown_or_malformed_logs(self):
        """Test that unknown topics and malformed logs give None."""
        registry = AbiRegistry()
        registry.index(TOKEN_ABI)

        assert registry.decode_log({"topics": [keccak(text="Other()")], "data": b""}) is None
        assert registry.decode_log({"topics": [], "data": b""}) is None
        bad = {"topics": [keccak(text="Ping(uint256)"), keccak(text="extra")], "data": b""}
        assert registry.decode_log(bad) is None

"""Async JSON-RPC access to the node through web3."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

logger = logging.getLogger(__name__)


class NodeRpc:
    """The RPC methods a session consumes, over a web3 AsyncWeb3 instance."""

    def __init__(self, w3: AsyncWeb3, endpoint: Optional[str] = None):
        self.w3 = w3
        self.endpoint = endpoint

    @classmethod
    def connect(cls, endpoint: str, cache: bool = False) -> "NodeRpc":
        """
        Create an RPC client for an HTTP endpoint.

        Args:
            endpoint: Node URL
            cache: Cache responses without expiry (safe when every tx mines a block)
        """
        provider = AsyncHTTPProvider(endpoint, cache_allowed_requests=cache)
        return cls(AsyncWeb3(provider), endpoint)

    async def request(self, method: str, params: Sequence[Any] = ()) -> Any:
        return await self.w3.manager.coro_request(method, list(params))

    async def chain_id(self) -> int:
        return await self.w3.eth.chain_id

    async def automine(self) -> bool:
        return bool(await self.request("anvil_getAutomine"))

    async def mine(self, blocks: int = 1) -> None:
        await self.request("anvil_mine", [hex(blocks)])

    async def set_balance(self, address: str, wei: int) -> None:
        await self.request("anvil_setBalance", [address, hex(wei)])

    async def set_storage_at(self, address: str, slot: int, value: bytes) -> None:
        await self.request(
            "anvil_setStorageAt",
            [address, "0x" + slot.to_bytes(32, "big").hex(), "0x" + value.hex()],
        )

    async def get_code(self, address: str) -> bytes:
        return bytes(await self.w3.eth.get_code(address))

    def contract(self, address: Optional[str], abi: List[Dict[str, Any]], bytecode: Optional[str] = None):
        if address is None:
            return self.w3.eth.contract(abi=abi, bytecode=bytecode)
        return self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=abi)

    async def build_deploy_transaction(
        self, abi: List[Dict[str, Any]], bytecode: str, args: Sequence[Any], sender: str
    ) -> Dict[str, Any]:
        factory = self.contract(None, abi, bytecode)
        return await factory.constructor(*args).build_transaction({"from": sender})

    async def build_call_transaction(self, call: Any, sender: str, value: int = 0) -> Dict[str, Any]:
        params: Dict[str, Any] = {"from": sender}
        if value:
            params["value"] = value
        return await call.build_transaction(params)

    async def send_transaction(self, account: LocalAccount, tx: Dict[str, Any]) -> bytes:
        """Sign a transaction locally and submit it; returns the transaction hash."""
        tx = dict(tx)
        tx.setdefault("from", account.address)
        if "nonce" not in tx:
            tx["nonce"] = await self.w3.eth.get_transaction_count(account.address, "pending")
        if "chainId" not in tx:
            tx["chainId"] = await self.chain_id()
        signed = account.sign_transaction(tx)
        return bytes(await self.w3.eth.send_raw_transaction(signed.raw_transaction))

    async def wait_for_receipt(self, tx_hash: Any) -> Any:
        return await self.w3.eth.wait_for_transaction_receipt(tx_hash)

    async def get_transaction(self, tx_hash: Any) -> Any:
        return await self.w3.eth.get_transaction(tx_hash)

    async def disconnect(self) -> None:
        provider = self.w3.provider
        if hasattr(provider, "disconnect"):
            await provider.disconnect()

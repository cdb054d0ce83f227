"""
Blockchain RPC boundary.

Wraps a synchronous Web3 HTTP provider so that every read, estimate and
submission runs in the default thread pool under an explicit timeout. All
failures (including timeouts) surface as ``NetworkError`` so callers can treat
them as fetch failures rather than fatal errors.
"""

import asyncio
import functools
from typing import Any, Callable, Dict, List, Optional, Tuple

from web3 import Web3
from web3.exceptions import TimeExhausted

from flash_arbitrage.exceptions import NetworkError
from flash_arbitrage.utils import get_logger

logger = get_logger(__name__)

# Map chain IDs to readable names
CHAIN_NAMES = {
    1: "Ethereum Mainnet",
    8453: "Base",
    84532: "Base Sepolia",
    42161: "Arbitrum",
    10: "Optimism",
}


class ChainClient:
    """
    Async facade over a single L2 RPC endpoint.

    Args:
        rpc_url: HTTP(S) RPC endpoint
        timeout_sec: Timeout applied to every individual RPC call
        receipt_timeout_sec: How long to wait for one confirmation
        web3: Pre-built Web3 instance (mainly for tests)
    """

    def __init__(
        self,
        rpc_url: str,
        timeout_sec: float = 10.0,
        receipt_timeout_sec: float = 120.0,
        web3: Optional[Web3] = None,
    ):
        if web3 is None and not rpc_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid RPC URL format: {rpc_url}")

        self.rpc_url = rpc_url
        self.timeout_sec = timeout_sec
        self.receipt_timeout_sec = receipt_timeout_sec
        self.web3 = web3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_sec})
        )
        self._contracts: Dict[Tuple[str, int], Any] = {}

    async def _call(
        self, label: str, fn: Callable, *args, timeout: Optional[float] = None
    ) -> Any:
        """Run a blocking web3 call in the thread pool with a timeout."""
        limit = timeout if timeout is not None else self.timeout_sec
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, functools.partial(fn, *args)), limit
            )
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"{label} timed out after {limit}s", endpoint=self.rpc_url
            ) from e
        except Exception as e:
            raise NetworkError(f"{label} failed: {e}", endpoint=self.rpc_url) from e

    def _contract(self, address: str, abi: List[dict]):
        key = (address, id(abi))
        contract = self._contracts.get(key)
        if contract is None:
            contract = self.web3.eth.contract(
                address=Web3.to_checksum_address(address), abi=abi
            )
            self._contracts[key] = contract
        return contract

    async def read_contract(
        self, address: str, abi: List[dict], fn_name: str, *args
    ) -> Any:
        """Call a view function and return its decoded result."""
        contract = self._contract(address, abi)
        call = getattr(contract.functions, fn_name)(*args)
        return await self._call(f"{fn_name}() on {address}", call.call)

    async def get_gas_price(self) -> int:
        """Current network gas price in wei."""
        return await self._call("eth_gasPrice", lambda: self.web3.eth.gas_price)

    async def get_block_number(self) -> int:
        return await self._call("eth_blockNumber", lambda: self.web3.eth.block_number)

    async def get_chain_id(self) -> int:
        return await self._call("eth_chainId", lambda: self.web3.eth.chain_id)

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        return await self._call(
            "eth_getBalance", self.web3.eth.get_balance, address
        )

    async def get_transaction_count(self, address: str) -> int:
        return await self._call(
            "eth_getTransactionCount",
            self.web3.eth.get_transaction_count,
            address,
            "pending",
        )

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        """Estimate gas units; a revert during estimation raises NetworkError."""
        return await self._call("eth_estimateGas", self.web3.eth.estimate_gas, tx)

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        """Broadcast a signed transaction and return its hash as hex."""
        tx_hash = await self._call(
            "eth_sendRawTransaction", self.web3.eth.send_raw_transaction, raw_tx
        )
        return Web3.to_hex(tx_hash)

    async def wait_for_receipt(
        self, tx_hash: str, timeout: Optional[float] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Block until the transaction has one confirmation.

        Returns:
            Normalized receipt dict, or None if not mined within the timeout
        """
        limit = timeout if timeout is not None else self.receipt_timeout_sec

        def _wait():
            try:
                return self.web3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=limit
                )
            except TimeExhausted:
                return None

        # Outer timeout leaves headroom for the provider's own polling
        receipt = await self._call(
            f"receipt for {tx_hash}", _wait, timeout=limit + self.timeout_sec
        )
        if receipt is None:
            return None

        return {
            "status": int(receipt["status"]),
            "gasUsed": int(receipt["gasUsed"]),
            "effectiveGasPrice": int(receipt.get("effectiveGasPrice", 0)),
            "blockNumber": int(receipt["blockNumber"]),
            "transactionHash": tx_hash,
        }

    async def describe(self) -> str:
        """Human-readable network summary for startup logs."""
        chain_id = await self.get_chain_id()
        block = await self.get_block_number()
        chain_name = CHAIN_NAMES.get(chain_id, f"Chain {chain_id}")
        return f"{chain_name} (block #{block:,})"

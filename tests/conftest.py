"""
Shared fixtures: an in-memory chain and Base-like tokens and pools.

``FakeChain`` implements the subset of ``dex.chain.ChainClient`` the scanner
and execution client use, backed by plain dicts so tests can set prices,
reserves, contract state and failures directly.
"""

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from eth_account import Account
from prometheus_client import CollectorRegistry
from web3 import Web3

from dex.types import ArbitrageOpportunity, PoolRef, ScanGroup, TokenInfo
from flash_arbitrage.exceptions import NetworkError

WETH = TokenInfo("WETH", Web3.to_checksum_address("0x4200000000000000000000000000000000000006"), 18)
USDC = TokenInfo("USDC", Web3.to_checksum_address("0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"), 6)

POOL_A = Web3.to_checksum_address("0x" + "a1" * 20)
POOL_B = Web3.to_checksum_address("0x" + "b2" * 20)
POOL_C = Web3.to_checksum_address("0x" + "c3" * 20)

CONTRACT = Web3.to_checksum_address("0x" + "ab" * 20)
OWNER = Web3.to_checksum_address("0x" + "0e" * 20)

# Deterministic throwaway key, never funded
BOT_KEY = "0x" + "11" * 32
BOT_ADDRESS = Account.from_key(BOT_KEY).address

TX_HASH = "0x" + "12" * 32


def v2_reserves(price, base_liquidity, base: TokenInfo = WETH, quote: TokenInfo = USDC):
    """Reserves (token0=base, token1=quote) giving ``price`` quote per base."""
    price = Decimal(str(price))
    base_liquidity = Decimal(str(base_liquidity))
    reserve_base = int(base_liquidity * Decimal(10) ** base.decimals)
    reserve_quote = int(price * base_liquidity * Decimal(10) ** quote.decimals)
    return reserve_base, reserve_quote


def make_group(*pools: PoolRef, base: TokenInfo = WETH, quote: TokenInfo = USDC) -> ScanGroup:
    return ScanGroup(
        base=base,
        quote=quote,
        pools=tuple(pools),
        decimal_adjustment=Decimal(10) ** (base.decimals - quote.decimals),
    )


def make_opportunity(opportunity_id: str = "arb-1-1", notional: str = "1.5") -> ArbitrageOpportunity:
    return ArbitrageOpportunity(
        id=opportunity_id,
        pair_label="WETH/USDC",
        base=WETH,
        quote=USDC,
        buy_pool=POOL_A,
        sell_pool=POOL_B,
        buy_fee_tier=500,
        buy_fee_bps=Decimal(5),
        sell_fee_bps=Decimal(5),
        gross_spread_bps=Decimal(100),
        net_spread_bps=Decimal(85),
        notional=Decimal(notional),
        estimated_profit=Decimal("38.25"),
        base_price=Decimal(3000),
        block_number=100,
        timestamp=1700000000.0,
    )


class FakeChain:
    """In-memory stand-in for ChainClient."""

    def __init__(self):
        self.pools: Dict[str, Dict[str, Any]] = {}
        self.failing: set = set()

        self.gas_price = 50_000_000  # 0.05 gwei
        self.block_number = 100
        self.chain_id = 8453
        self.balances: Dict[str, int] = {}
        self.nonce = 0

        # Executor contract state
        self.paused = False
        self.executors: set = set()
        self.owner = OWNER
        self.contract_balances: Dict[str, int] = {}

        self.estimate = 300_000
        self.estimate_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.receipt: Optional[Dict[str, Any]] = {
            "status": 1,
            "gasUsed": 250_000,
            "effectiveGasPrice": 50_000_000,
            "blockNumber": 101,
        }
        self.receipt_error: Optional[Exception] = None

        self.sent: List[bytes] = []
        self.estimates: List[Dict[str, Any]] = []
        self.calls: List[str] = []
        self.gas_gate: Optional[asyncio.Event] = None

    # === POOL SETUP ===

    def add_v2_pool(self, address, token0: TokenInfo, token1: TokenInfo, reserve0: int, reserve1: int):
        self.pools[address] = {
            "token0": token0.address,
            "token1": token1.address,
            "reserves": (reserve0, reserve1, 0),
        }

    def add_v3_pool(
        self,
        address,
        token0: TokenInfo,
        token1: TokenInfo,
        sqrt_price_x96: int,
        liquidity: int,
        fee: int = 500,
        tick: int = 0,
    ):
        self.pools[address] = {
            "token0": token0.address,
            "token1": token1.address,
            "fee": fee,
            "slot0": (sqrt_price_x96, tick, 0, 1, 1, 0, True),
            "liquidity": liquidity,
        }

    def set_v2_price(self, address, price, base_liquidity=1000):
        reserve0, reserve1 = v2_reserves(price, base_liquidity)
        self.pools[address]["reserves"] = (reserve0, reserve1, 0)

    # === ChainClient INTERFACE ===

    async def read_contract(self, address, abi, fn_name, *args):
        self.calls.append(f"{fn_name}@{address}")
        if address in self.failing:
            raise NetworkError(f"{fn_name}() on {address} failed: execution reverted")

        if address in self.pools:
            pool = self.pools[address]
            if fn_name == "getReserves":
                return pool["reserves"]
            return pool[fn_name]

        if fn_name == "paused":
            return self.paused
        if fn_name == "isExecutor":
            return args[0] in self.executors
        if fn_name == "OWNER":
            return self.owner
        if fn_name == "getBalance":
            return self.contract_balances.get(args[0], 0)
        raise NetworkError(f"{fn_name}() on {address} failed: no contract code")

    async def get_gas_price(self) -> int:
        if self.gas_gate is not None:
            await self.gas_gate.wait()
        return self.gas_price

    async def get_block_number(self) -> int:
        return self.block_number

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def get_balance(self, address) -> int:
        return self.balances.get(address, 0)

    async def get_transaction_count(self, address) -> int:
        return self.nonce

    async def estimate_gas(self, tx) -> int:
        self.estimates.append(tx)
        if self.estimate_error is not None:
            raise self.estimate_error
        return self.estimate

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(raw_tx)
        self.nonce += 1
        return TX_HASH

    async def wait_for_receipt(self, tx_hash, timeout=None):
        if self.receipt_error is not None:
            raise self.receipt_error
        if self.receipt is None:
            return None
        return {**self.receipt, "transactionHash": tx_hash}

    async def describe(self) -> str:
        return f"Base (block #{self.block_number:,})"


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def two_pool_chain(chain):
    """WETH/USDC on two v2 pools, 3000 and 3030, 1000 WETH deep each."""
    chain.add_v2_pool(POOL_A, WETH, USDC, *v2_reserves(3000, 1000))
    chain.add_v2_pool(POOL_B, WETH, USDC, *v2_reserves(3030, 1000))
    return chain


@pytest.fixture
def weth_usdc_group():
    return make_group(
        PoolRef(POOL_A, "v2", "aerodrome", fee_bps=5),
        PoolRef(POOL_B, "v2", "uniswap_v2", fee_bps=5),
    )


@pytest.fixture
def test_registry():
    """Create a test-specific Prometheus registry"""
    return CollectorRegistry()


@pytest.fixture
def config_dict():
    """Minimal valid configuration mirroring configs/base_flash_arb.yaml."""
    return {
        "rpc_url": "https://mainnet.base.org",
        "tokens": {
            "WETH": {"address": WETH.address, "decimals": 18},
            "USDC": {"address": USDC.address, "decimals": 6},
        },
        "scan_groups": [
            {
                "base": "WETH",
                "quote": "USDC",
                "pools": [
                    {"address": POOL_A, "kind": "v2", "dex": "aerodrome", "fee_bps": 5},
                    {"address": POOL_B, "kind": "v2", "dex": "uniswap_v2", "fee_bps": 5},
                ],
            }
        ],
        "reference": {"group": "WETH/USDC", "pool": POOL_A},
        "strategies": [
            {
                "id": "flash-loan-arb",
                "name": "Flash Loan Arbitrage",
                "allocated_usd": 10000,
                "interval_sec": 3600,
                "max_consecutive_failures": 3,
            }
        ],
    }

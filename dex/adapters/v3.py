"""
Concentrated-liquidity (Uniswap V3) venue reader.

V3 pools expose price as ``sqrtPriceX96``, a Q64.96 fixed-point square root.
Squaring a uint160 needs up to 320 bits, so the square is taken on Python
integers and only the final ratio is converted to Decimal.
"""

import asyncio
from decimal import Decimal, localcontext
from typing import Tuple

from web3 import Web3

from ..abi import UNISWAP_V3_POOL_ABI
from ..types import PoolMetadata, PoolRef

Q96 = 2**96
Q192 = Q96 * Q96

# Digits kept for the sqrtPrice ratio; a uint160 squared has up to 97 digits
PRICE_PRECISION = 60

# Common V3 fee tiers (in pips, 1 pip = 0.0001%)
V3_FEE_TIERS = {
    "LOWEST": 100,  # 0.01%
    "LOW": 500,  # 0.05%
    "MEDIUM": 3000,  # 0.30%
    "HIGH": 10000,  # 1.00%
}


def fee_tier_to_bps(fee_tier: int) -> Decimal:
    """Convert a V3 fee tier in pips to basis points (500 -> 5 bps)."""
    return Decimal(fee_tier) / Decimal(100)


def price_from_sqrt_price_x96(sqrt_price_x96: int) -> Decimal:
    """
    Raw token1-per-token0 price from a Q64.96 square-root price.

    price = (sqrtPriceX96 / 2^96)^2 = sqrtPriceX96^2 / 2^192

    Args:
        sqrt_price_x96: slot0().sqrtPriceX96

    Returns:
        Price in base units of token1 per base unit of token0
    """
    if sqrt_price_x96 <= 0:
        raise ValueError(f"sqrtPriceX96 must be positive: {sqrt_price_x96}")

    squared = sqrt_price_x96 * sqrt_price_x96
    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        return Decimal(squared) / Decimal(Q192)


def virtual_reserves(liquidity: int, sqrt_price_x96: int) -> Tuple[Decimal, Decimal]:
    """
    Virtual reserves of the active tick range.

    x = L / sqrtP and y = L * sqrtP, with sqrtP = sqrtPriceX96 / 2^96. These
    only describe the current range, so they overstate depth for large trades
    that cross ticks.

    Returns:
        Tuple of (token0, token1) virtual reserves in base units
    """
    if sqrt_price_x96 <= 0:
        return Decimal(0), Decimal(0)

    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        reserve0 = Decimal(liquidity * Q96) / Decimal(sqrt_price_x96)
        reserve1 = Decimal(liquidity * sqrt_price_x96) / Decimal(Q96)
    return reserve0, reserve1


async def read_metadata(chain, pool: PoolRef) -> PoolMetadata:
    """
    Fetch the immutable facts of a V3 pool (token0, token1, fee).

    Args:
        chain: ChainClient-compatible RPC boundary
        pool: Configured pool reference

    Returns:
        PoolMetadata for the pool
    """
    token0, token1, fee = await asyncio.gather(
        chain.read_contract(pool.address, UNISWAP_V3_POOL_ABI, "token0"),
        chain.read_contract(pool.address, UNISWAP_V3_POOL_ABI, "token1"),
        chain.read_contract(pool.address, UNISWAP_V3_POOL_ABI, "fee"),
    )

    return PoolMetadata(
        address=pool.address,
        token0=Web3.to_checksum_address(token0),
        token1=Web3.to_checksum_address(token1),
        fee_tier=int(fee),
        fee_bps=fee_tier_to_bps(int(fee)),
        kind="v3",
    )


async def read_state(chain, pool: PoolRef) -> Tuple[int, int, int]:
    """
    Fetch the mutable state of a V3 pool.

    Returns:
        Tuple of (sqrtPriceX96, tick, liquidity)
    """
    slot0, liquidity = await asyncio.gather(
        chain.read_contract(pool.address, UNISWAP_V3_POOL_ABI, "slot0"),
        chain.read_contract(pool.address, UNISWAP_V3_POOL_ABI, "liquidity"),
    )
    return int(slot0[0]), int(slot0[1]), int(liquidity)

"""
Constant-product (Uniswap V2 / Aerodrome volatile) venue reader.

Reads token metadata once and reserves on every scan. Spot price is the
reserve ratio; a pool with an empty side yields no price.
"""

import asyncio
from decimal import Decimal
from typing import Optional, Tuple

from web3 import Web3

from ..abi import V2_PAIR_ABI
from ..types import PoolMetadata, PoolRef


async def read_metadata(chain, pool: PoolRef) -> PoolMetadata:
    """
    Fetch the immutable facts of a V2-style pair.

    The fee is not exposed uniformly across V2 forks, so it comes from config.

    Args:
        chain: ChainClient-compatible RPC boundary
        pool: Configured pool reference

    Returns:
        PoolMetadata for the pair
    """
    token0, token1 = await asyncio.gather(
        chain.read_contract(pool.address, V2_PAIR_ABI, "token0"),
        chain.read_contract(pool.address, V2_PAIR_ABI, "token1"),
    )

    return PoolMetadata(
        address=pool.address,
        token0=Web3.to_checksum_address(token0),
        token1=Web3.to_checksum_address(token1),
        # Stored in pips like V3 so the contract sees one unit
        fee_tier=pool.fee_bps * 100,
        fee_bps=Decimal(pool.fee_bps),
        kind="v2",
    )


async def read_state(chain, pool: PoolRef) -> Tuple[int, int]:
    """
    Fetch current reserves of a V2-style pair.

    Returns:
        Tuple of (reserve0, reserve1) in base units
    """
    reserves = await chain.read_contract(pool.address, V2_PAIR_ABI, "getReserves")
    return int(reserves[0]), int(reserves[1])


def spot_price(reserve0: int, reserve1: int) -> Optional[Decimal]:
    """
    Raw token1-per-token0 price of a constant-product pool.

    Args:
        reserve0: Reserve of token0 (base units)
        reserve1: Reserve of token1 (base units)

    Returns:
        reserve1 / reserve0, or None if either side is empty
    """
    if reserve0 <= 0 or reserve1 <= 0:
        return None
    return Decimal(reserve1) / Decimal(reserve0)

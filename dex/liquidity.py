"""
Liquidity depth monitor.

Estimates how much of the base asset a pool can absorb before price impact
becomes material. For V3 pools the active-range liquidity ``L`` is turned into
virtual reserves; for V2 pairs the base-side reserve is used directly.

The safe size is a fixed percentage of the thinner leg's base-asset
liquidity. This is an approximation: it ignores slippage from crossing tick
ranges, so it overstates capacity in fragmented V3 pools.
"""

from decimal import Decimal
from typing import Optional

from flash_arbitrage.utils import from_base_units, get_logger

from .adapters import v2, v3
from .types import PoolDepth, PoolRef, ScanGroup

logger = get_logger(__name__)

DEFAULT_MAX_IMPACT_PCT = Decimal("1")


class LiquidityDepthMonitor:
    """
    Reads pool depth on demand.

    Args:
        chain: ChainClient-compatible RPC boundary
        oracle: PriceOracle whose metadata cache is reused
    """

    def __init__(self, chain, oracle):
        self.chain = chain
        self.oracle = oracle

    async def get_depth(self, pool: PoolRef, group: ScanGroup) -> Optional[PoolDepth]:
        """
        Liquidity snapshot for one pool, in the group's base asset.

        Returns:
            PoolDepth, or None if the read failed
        """
        try:
            metadata = await self.oracle.get_metadata(pool)
            base_is_token0 = metadata.token0 == group.base.address

            if pool.kind == "v3":
                sqrt_price_x96, tick, liquidity = await v3.read_state(
                    self.chain, pool
                )
                reserve0, reserve1 = v3.virtual_reserves(liquidity, sqrt_price_x96)
                raw_price = (
                    v3.price_from_sqrt_price_x96(sqrt_price_x96)
                    if sqrt_price_x96 > 0
                    else Decimal(0)
                )
            else:
                r0, r1 = await v2.read_state(self.chain, pool)
                reserve0, reserve1 = Decimal(r0), Decimal(r1)
                liquidity = r0 if base_is_token0 else r1
                tick = 0
                raw_price = v2.spot_price(r0, r1) or Decimal(0)

            base_reserve = reserve0 if base_is_token0 else reserve1
            base_liquidity = from_base_units(base_reserve, group.base.decimals)

            return PoolDepth(
                pool_address=pool.address,
                liquidity=int(liquidity),
                price=raw_price,
                tick=tick,
                base_liquidity=base_liquidity,
            )

        except Exception as e:
            logger.warning(f"Failed to read depth of {pool.dex} pool {pool.address}: {e}")
            return None

    @staticmethod
    def safe_trade_size(
        depth: PoolDepth, max_impact_percent: Decimal = DEFAULT_MAX_IMPACT_PCT
    ) -> Decimal:
        """Base-asset amount equal to ``max_impact_percent``% of pool liquidity."""
        if depth.base_liquidity <= 0:
            return Decimal(0)
        return depth.base_liquidity * Decimal(max_impact_percent) / Decimal(100)

    @classmethod
    def safe_size_for_legs(
        cls,
        buy_depth: PoolDepth,
        sell_depth: PoolDepth,
        max_impact_percent: Decimal = DEFAULT_MAX_IMPACT_PCT,
    ) -> Decimal:
        """Safe size of a two-leg trade, bounded by the thinner pool."""
        return min(
            cls.safe_trade_size(buy_depth, max_impact_percent),
            cls.safe_trade_size(sell_depth, max_impact_percent),
        )

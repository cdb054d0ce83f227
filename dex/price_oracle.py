"""
On-chain price oracle for cross-venue spread detection.

Reads spot prices from every pool of every configured scan group, orients
them as quote-per-base in human units and finds the cheapest and most
expensive pool per group. Pool metadata (tokens, fee) is immutable and cached
for the process lifetime, so after the first scan each pool costs one or two
RPC calls per cycle.
"""

import asyncio
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from flash_arbitrage.utils import BPS_DENOMINATOR, get_logger

from .adapters import v2, v3
from .types import GroupSpread, PoolMetadata, PoolPrice, PoolQuote, PoolRef, ScanGroup

logger = get_logger(__name__)

# Aave V3 flash-loan premium (0.05%)
DEFAULT_FLASH_LOAN_PREMIUM_BPS = Decimal("5")

# Net spreads at or below this are treated as noise
DEFAULT_OPPORTUNITY_EPSILON_BPS = Decimal("5")


class MetadataCache:
    """
    Append-only pool metadata cache keyed by pool address.

    Entries never change once written; two concurrent first reads of the same
    pool both store equal values, so no locking is needed.
    """

    def __init__(self):
        self._entries: Dict[str, PoolMetadata] = {}

    def get(self, address: str) -> Optional[PoolMetadata]:
        return self._entries.get(address)

    def put(self, metadata: PoolMetadata) -> None:
        self._entries[metadata.address] = metadata

    def __contains__(self, address: str) -> bool:
        return address in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def compute_spread(
    group: ScanGroup,
    quotes: Sequence[PoolQuote],
    premium_bps: Decimal = DEFAULT_FLASH_LOAN_PREMIUM_BPS,
    epsilon_bps: Decimal = DEFAULT_OPPORTUNITY_EPSILON_BPS,
    failed_reads: int = 0,
) -> GroupSpread:
    """
    Compare oriented quotes and compute gross and net spread.

    gross = (max - min) / min * 10000
    net   = gross - (buy fee + sell fee + flash-loan premium)

    Args:
        group: Scan group the quotes belong to
        quotes: Successful quotes this cycle
        premium_bps: Flash-loan premium in basis points
        epsilon_bps: Noise floor the net spread must exceed
        failed_reads: Number of pools that could not be read

    Returns:
        GroupSpread; with fewer than two quotes it carries no buy/sell pool
    """
    result = GroupSpread(group=group, quotes=list(quotes), failed_reads=failed_reads)
    if len(quotes) < 2:
        return result

    buy = min(quotes, key=lambda q: q.price)
    sell = max(quotes, key=lambda q: q.price)

    gross = (sell.price - buy.price) / buy.price * BPS_DENOMINATOR
    total_fee_bps = buy.fee_bps + sell.fee_bps + premium_bps
    net = gross - total_fee_bps

    result.gross_spread_bps = gross
    result.net_spread_bps = net
    result.buy = buy
    result.sell = sell
    result.has_opportunity = net > epsilon_bps
    return result


class PriceOracle:
    """
    Multi-venue price and metadata reader for a fixed set of scan groups.

    Args:
        chain: ChainClient-compatible RPC boundary
        scan_groups: Pairs to scan, each listing its pools
        reference_group: Group holding the reference pool
        reference_pool: Pool used to price the base asset in currency
        premium_bps: Flash-loan premium subtracted from every spread
        epsilon_bps: Noise floor for ``has_opportunity``
        metadata_cache: Shared cache (a fresh one is created if omitted)
    """

    def __init__(
        self,
        chain,
        scan_groups: Sequence[ScanGroup],
        reference_group: Optional[ScanGroup] = None,
        reference_pool: Optional[PoolRef] = None,
        premium_bps: Decimal = DEFAULT_FLASH_LOAN_PREMIUM_BPS,
        epsilon_bps: Decimal = DEFAULT_OPPORTUNITY_EPSILON_BPS,
        metadata_cache: Optional[MetadataCache] = None,
    ):
        if epsilon_bps <= 0:
            raise ValueError(f"epsilon_bps must be positive: {epsilon_bps}")

        self.chain = chain
        self.scan_groups = list(scan_groups)
        self.reference_group = reference_group
        self.reference_pool = reference_pool
        self.premium_bps = Decimal(premium_bps)
        self.epsilon_bps = Decimal(epsilon_bps)
        self.metadata_cache = metadata_cache or MetadataCache()

        logger.info(
            f"Price oracle initialized with {len(self.scan_groups)} scan groups, "
            f"{sum(len(g.pools) for g in self.scan_groups)} pools"
        )

    async def get_metadata(self, pool: PoolRef) -> PoolMetadata:
        """Return cached metadata, fetching it on first touch."""
        cached = self.metadata_cache.get(pool.address)
        if cached is not None:
            return cached

        if pool.kind == "v3":
            metadata = await v3.read_metadata(self.chain, pool)
        else:
            metadata = await v2.read_metadata(self.chain, pool)

        self.metadata_cache.put(metadata)
        logger.debug(
            f"Cached metadata for {pool.dex} pool {pool.address} "
            f"(fee {metadata.fee_bps} bps)"
        )
        return metadata

    async def get_pool_price(self, pool: PoolRef) -> Optional[PoolPrice]:
        """
        Read the current raw price of one pool.

        Returns:
            PoolPrice, or None if the read failed or the pool is empty
        """
        try:
            metadata = await self.get_metadata(pool)

            if pool.kind == "v3":
                sqrt_price_x96, tick, liquidity = await v3.read_state(
                    self.chain, pool
                )
                if sqrt_price_x96 <= 0:
                    logger.warning(f"Pool {pool.address} is not initialized")
                    return None
                return PoolPrice(
                    pool_address=pool.address,
                    dex=pool.dex,
                    kind="v3",
                    price=v3.price_from_sqrt_price_x96(sqrt_price_x96),
                    fee_bps=metadata.fee_bps,
                    liquidity=liquidity,
                    metadata=metadata,
                    sqrt_price_x96=sqrt_price_x96,
                    tick=tick,
                )

            reserve0, reserve1 = await v2.read_state(self.chain, pool)
            price = v2.spot_price(reserve0, reserve1)
            if price is None:
                logger.info(f"Pool {pool.address} has an empty reserve, skipping")
                return None
            return PoolPrice(
                pool_address=pool.address,
                dex=pool.dex,
                kind="v2",
                price=price,
                fee_bps=metadata.fee_bps,
                liquidity=reserve0,
                metadata=metadata,
            )

        except Exception as e:
            logger.warning(f"Failed to read {pool.dex} pool {pool.address}: {e}")
            return None

    @staticmethod
    def orient(price: PoolPrice, group: ScanGroup) -> Optional[PoolQuote]:
        """
        Express a raw pool price as quote-per-base in human units.

        Returns:
            PoolQuote, or None if the pool does not hold the group's tokens
        """
        meta = price.metadata
        base, quote = group.base.address, group.quote.address

        if meta.token0 == base and meta.token1 == quote:
            oriented = price.price * group.decimal_adjustment
        elif meta.token0 == quote and meta.token1 == base:
            oriented = group.decimal_adjustment / price.price
        else:
            logger.warning(
                f"Pool {price.pool_address} holds {meta.token0}/{meta.token1}, "
                f"not {group.label}; excluded"
            )
            return None

        return PoolQuote(pool=price, price=oriented)

    async def get_group_quotes(self, group: ScanGroup) -> List[Optional[PoolQuote]]:
        """Read every pool of a group concurrently; failed reads are None."""
        prices = await asyncio.gather(*(self.get_pool_price(p) for p in group.pools))
        return [self.orient(p, group) if p is not None else None for p in prices]

    async def get_group_spread(self, group: ScanGroup) -> GroupSpread:
        """Best buy/sell spread for one group this cycle."""
        results = await self.get_group_quotes(group)
        quotes = [q for q in results if q is not None]
        failed = len(results) - len(quotes)

        spread = compute_spread(
            group,
            quotes,
            premium_bps=self.premium_bps,
            epsilon_bps=self.epsilon_bps,
            failed_reads=failed,
        )
        if len(quotes) < 2:
            logger.info(
                f"{group.label}: only {len(quotes)} of {len(group.pools)} pools "
                "readable, no comparison this cycle"
            )
        return spread

    async def scan_all_groups(self) -> List[GroupSpread]:
        """Compute the per-group best spread for every scan group."""
        return list(
            await asyncio.gather(*(self.get_group_spread(g) for g in self.scan_groups))
        )

    @staticmethod
    def best_of(spreads: Sequence[GroupSpread]) -> Optional[GroupSpread]:
        """Highest net spread among groups with at least two quotes."""
        comparable = [s for s in spreads if s.buy is not None and s.sell is not None]
        if not comparable:
            return None
        return max(comparable, key=lambda s: s.net_spread_bps)

    async def find_best_opportunity_across_groups(self) -> Optional[GroupSpread]:
        """Scan all groups and return the one with the highest net spread."""
        return self.best_of(await self.scan_all_groups())

    async def get_reference_price(self) -> Optional[Decimal]:
        """
        Currency value of one unit of the reference group's base asset.

        Returns:
            Price (e.g., USDC per WETH), or None if unavailable
        """
        if self.reference_group is None or self.reference_pool is None:
            logger.error("No reference pool configured")
            return None

        price = await self.get_pool_price(self.reference_pool)
        if price is None:
            return None

        quote = self.orient(price, self.reference_group)
        return quote.price if quote is not None else None

    def cache_stats(self) -> Dict:
        """Get metadata cache statistics."""
        return {
            "cached_pools": len(self.metadata_cache),
            "configured_pools": sum(len(g.pools) for g in self.scan_groups),
        }

"""
Core data types for DEX flash-loan arbitrage scanning.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Literal, Optional, Tuple

DexKind = Literal["v2", "v3"]

# Aerodrome volatile pools charge 0.30%
DEFAULT_V2_FEE_BPS = 30


@dataclass(frozen=True)
class TokenInfo:
    """ERC20 token known to the scanner."""

    symbol: str
    address: str
    decimals: int


@dataclass(frozen=True)
class PoolRef:
    """
    Configured pool on a single venue.

    Attributes:
        address: Checksum address of the pool contract
        kind: "v3" for concentrated liquidity, "v2" for constant product
        dex: Venue name (e.g., "uniswap_v3", "aerodrome")
        fee_bps: Swap fee for v2 pools; v3 pools read their fee on chain
    """

    address: str
    kind: DexKind
    dex: str
    fee_bps: int = DEFAULT_V2_FEE_BPS


@dataclass(frozen=True)
class PoolMetadata:
    """
    Immutable facts about one pool, cached for the process lifetime.

    Attributes:
        address: Pool address
        token0: Checksum address of token0
        token1: Checksum address of token1
        fee_tier: Raw fee as the venue reports it (v3 pips, e.g. 500 = 0.05%)
        fee_bps: Fee in basis points
        kind: Venue kind
    """

    address: str
    token0: str
    token1: str
    fee_tier: int
    fee_bps: Decimal
    kind: DexKind


@dataclass
class PoolPrice:
    """
    One point-in-time price observation.

    ``price`` is the raw token1/token0 ratio in base units; orientation and
    decimal adjustment happen per scan group in the oracle.
    """

    pool_address: str
    dex: str
    kind: DexKind
    price: Decimal
    fee_bps: Decimal
    liquidity: int
    metadata: PoolMetadata
    sqrt_price_x96: int = 0
    tick: int = 0


@dataclass(frozen=True)
class ScanGroup:
    """
    A tradable pair and every configured pool (any venue) quoting it.

    Attributes:
        base: Asset being borrowed and priced
        quote: Asset the price is expressed in
        pools: Pools quoting the pair, at least one
        decimal_adjustment: 10 ** (base.decimals - quote.decimals)
    """

    base: TokenInfo
    quote: TokenInfo
    pools: Tuple[PoolRef, ...]
    decimal_adjustment: Decimal

    @property
    def label(self) -> str:
        return f"{self.base.symbol}/{self.quote.symbol}"


@dataclass
class PoolQuote:
    """A pool price oriented as quote-per-base in human units."""

    pool: PoolPrice
    price: Decimal

    @property
    def address(self) -> str:
        return self.pool.pool_address

    @property
    def fee_bps(self) -> Decimal:
        return self.pool.fee_bps


@dataclass
class GroupSpread:
    """
    Best buy/sell comparison for one scan group.

    Attributes:
        group: The scan group
        quotes: Successful oriented quotes this cycle
        gross_spread_bps: (max - min) / min * 10000
        net_spread_bps: gross minus both pool fees and the flash-loan premium
        buy: Cheapest pool (None with fewer than two quotes)
        sell: Most expensive pool (None with fewer than two quotes)
        has_opportunity: True when net spread clears the noise floor
        failed_reads: Pools whose read failed this cycle
    """

    group: ScanGroup
    quotes: List[PoolQuote] = field(default_factory=list)
    gross_spread_bps: Decimal = Decimal(0)
    net_spread_bps: Decimal = Decimal(0)
    buy: Optional[PoolQuote] = None
    sell: Optional[PoolQuote] = None
    has_opportunity: bool = False
    failed_reads: int = 0

    @property
    def pair_label(self) -> str:
        return self.group.label

    @property
    def pool_count(self) -> int:
        return len(self.quotes)

    @property
    def mid_price(self) -> Optional[Decimal]:
        if self.buy is None or self.sell is None:
            return None
        return (self.buy.price + self.sell.price) / 2


@dataclass
class PoolDepth:
    """
    Liquidity snapshot for one pool.

    Attributes:
        pool_address: Pool address
        liquidity: Raw liquidity measure (v3 ``L``, v2 base reserve)
        price: Raw token1/token0 price
        tick: Current tick (0 for v2)
        base_liquidity: Liquidity expressed in base-asset units
    """

    pool_address: str
    liquidity: int
    price: Decimal
    tick: int
    base_liquidity: Decimal


@dataclass
class ArbitrageOpportunity:
    """
    A detected, sized and thresholded flash-loan trade candidate.

    Attributes:
        id: ``arb-<epoch ms>-<scan counter>``, unique per scanner
        pair_label: Human-readable pair (e.g., "WETH/USDC")
        base: Asset borrowed by the flash loan
        quote: Asset swapped through
        buy_pool: Cheapest pool address
        sell_pool: Most expensive pool address
        buy_fee_tier: Raw fee tier of the buy pool, passed to the contract
        buy_fee_bps: Buy pool fee in bps
        sell_fee_bps: Sell pool fee in bps
        gross_spread_bps: Spread before fees
        net_spread_bps: Spread after pool fees and the flash-loan premium
        notional: Recommended size in base-asset units
        estimated_profit: Profit estimate in currency (USD)
        base_price: Currency value of one base-asset unit
        block_number: Block the scan observed
        timestamp: Unix seconds at construction
        depth_capped: True when pool depth reduced the size
        scale_factor: Multiplier applied for exceptional spreads
    """

    id: str
    pair_label: str
    base: TokenInfo
    quote: TokenInfo
    buy_pool: str
    sell_pool: str
    buy_fee_tier: int
    buy_fee_bps: Decimal
    sell_fee_bps: Decimal
    gross_spread_bps: Decimal
    net_spread_bps: Decimal
    notional: Decimal
    estimated_profit: Decimal
    base_price: Decimal
    block_number: int
    timestamp: float
    depth_capped: bool = False
    scale_factor: Decimal = Decimal(1)

    def to_dict(self) -> dict:
        """Structured form for logs and the control API."""
        return {
            "id": self.id,
            "pair": self.pair_label,
            "buy_pool": self.buy_pool,
            "sell_pool": self.sell_pool,
            "gross_spread_bps": float(self.gross_spread_bps),
            "net_spread_bps": float(self.net_spread_bps),
            "notional": float(self.notional),
            "estimated_profit_usd": float(self.estimated_profit),
            "base_price_usd": float(self.base_price),
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "depth_capped": self.depth_capped,
            "scale_factor": float(self.scale_factor),
        }

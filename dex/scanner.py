"""
Arbitrage scanner.

One ``scan()`` is one detection cycle:

1. Gas price and block number (gas above the ceiling ends the cycle)
2. Reference price of the base asset in currency
3. Best net spread across all scan groups
4. Spread floor
5. Sizing: global notional cap, exceptional-spread scale-up, then depth cap
   (no scale-up when depth cannot be read)
6. Profit floor
7. Opportunity construction

Every gate short-circuits. A gate that fails because the market offers
nothing returns None; a gate that fails because the cycle could not observe
the market raises ``DataError`` so the controller counts it as a failure.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from flash_arbitrage.exceptions import DataError, ScanInProgressError
from flash_arbitrage.utils import (
    BPS_DENOMINATOR,
    format_usd,
    get_current_millis,
    get_current_timestamp,
    get_logger,
)

from .liquidity import LiquidityDepthMonitor
from .types import ArbitrageOpportunity, GroupSpread, PoolRef, ScanGroup

logger = get_logger(__name__)

WEI_PER_GWEI = Decimal(10) ** 9


@dataclass(frozen=True)
class ScannerSettings:
    """
    Thresholds for a scan cycle.

    Attributes:
        min_profit_usd: Estimated profit must exceed this
        min_spread_bps: Net spread must exceed this
        max_flash_loan_usd: Notional cap before scale-up
        max_gas_price_gwei: Cycles are skipped above this gas price
        max_impact_pct: Share of the thinner pool's liquidity a trade may use
        exceptional_spread_bps: Net spread at which size is scaled up
        exceptional_size_multiplier: Scale-up factor for exceptional spreads
        currency_tokens: Quote symbols valued at 1 USD
    """

    min_profit_usd: Decimal = Decimal("5")
    min_spread_bps: Decimal = Decimal("5")
    max_flash_loan_usd: Decimal = Decimal("10000")
    max_gas_price_gwei: Decimal = Decimal("0.1")
    max_impact_pct: Decimal = Decimal("1")
    exceptional_spread_bps: Decimal = Decimal("50")
    exceptional_size_multiplier: Decimal = Decimal("2")
    currency_tokens: Tuple[str, ...] = ("USDC", "USDbC", "DAI")

    @property
    def max_gas_price_wei(self) -> int:
        return int(self.max_gas_price_gwei * WEI_PER_GWEI)


class ArbitrageScanner:
    """
    Turns oracle readings into sized, thresholded opportunities.

    Args:
        chain: ChainClient-compatible RPC boundary
        oracle: PriceOracle for spreads and the reference price
        depth_monitor: LiquidityDepthMonitor used to cap size
        settings: Scan thresholds
        events: Optional EventSink for the operator feed
        metrics: Optional FlashArbMetrics
    """

    def __init__(
        self,
        chain,
        oracle,
        depth_monitor: LiquidityDepthMonitor,
        settings: Optional[ScannerSettings] = None,
        events=None,
        metrics=None,
    ):
        self.chain = chain
        self.oracle = oracle
        self.depth_monitor = depth_monitor
        self.settings = settings or ScannerSettings()
        self.events = events
        self.metrics = metrics

        self.scan_count = 0
        self.opportunity_count = 0
        self.last_opportunity: Optional[ArbitrageOpportunity] = None
        self.last_best_spread: Optional[GroupSpread] = None
        self._scanning = False

    @property
    def scan_in_progress(self) -> bool:
        return self._scanning

    async def scan(self) -> Optional[ArbitrageOpportunity]:
        """
        Run one detection cycle.

        Returns:
            ArbitrageOpportunity, or None when nothing clears the thresholds

        Raises:
            ScanInProgressError: A scan is already running
            DataError: Reference price or every pool read unavailable
            NetworkError: Gas price or block number could not be read
        """
        if self._scanning:
            raise ScanInProgressError(
                "Scan already in progress", details={"scan_count": self.scan_count}
            )

        self._scanning = True
        try:
            self.scan_count += 1
            if self.metrics:
                self.metrics.record_scan()
            return await self._scan()
        finally:
            self._scanning = False

    async def _scan(self) -> Optional[ArbitrageOpportunity]:
        s = self.settings

        # 1. Gas gate
        gas_price, block_number = await asyncio.gather(
            self.chain.get_gas_price(), self.chain.get_block_number()
        )
        if gas_price > s.max_gas_price_wei:
            gwei = Decimal(gas_price) / WEI_PER_GWEI
            self._abort(
                "gas",
                f"Gas too high: {gwei:.4f} gwei (max: {s.max_gas_price_gwei} gwei)",
                severity="warning",
            )
            return None

        # 2. Reference price
        reference_price = await self.oracle.get_reference_price()
        if reference_price is None or reference_price <= 0:
            self._abort("reference_price", "Could not fetch reference price", "warning")
            raise DataError(
                "Reference price unavailable",
                source="price_oracle",
                symbol=self._reference_symbol(),
            )

        # 3. Spreads across every group
        spreads = await self.oracle.scan_all_groups()
        comparable = [sp for sp in spreads if sp.buy is not None]
        if not comparable:
            failed = sum(sp.failed_reads for sp in spreads)
            if failed:
                self._abort("blind", f"All scan groups blind ({failed} failed reads)", "warning")
                raise DataError(
                    "No scan group had two readable pools",
                    source="price_oracle",
                    details={"failed_reads": failed},
                )
            self._abort("no_quotes", "No scan group has two pools to compare")
            return None

        candidates = self._value_groups(comparable, reference_price)
        if not candidates:
            self._abort("valuation", "No comparable group could be valued in currency")
            return None

        best, base_price = max(candidates, key=lambda c: c[0].net_spread_bps)
        self.last_best_spread = best
        if self.metrics:
            self.metrics.record_best_spread(best.net_spread_bps)

        self._emit(
            f"Block {block_number}: {best.pair_label} spread "
            f"{best.gross_spread_bps:.2f} bps, net {best.net_spread_bps:.2f} bps",
            severity="success" if best.has_opportunity else "info",
            priority="low",
        )

        # 4. Spread floor
        if not best.has_opportunity or best.net_spread_bps <= s.min_spread_bps:
            self._abort(
                "spread",
                f"Best net spread {best.net_spread_bps:.2f} bps <= "
                f"{s.min_spread_bps} bps",
                emit=False,
            )
            return None

        # 5. Sizing
        notional, scale_factor, depth_capped = await self._size(best, base_price)

        # 6. Profit floor
        estimated_profit = notional * base_price * best.net_spread_bps / BPS_DENOMINATOR
        if estimated_profit <= s.min_profit_usd:
            self._abort(
                "profit",
                f"Profit too small: {format_usd(estimated_profit)} <= "
                f"{format_usd(s.min_profit_usd)}",
            )
            return None

        # 7. Build
        opportunity = ArbitrageOpportunity(
            id=f"arb-{get_current_millis()}-{self.scan_count}",
            pair_label=best.pair_label,
            base=best.group.base,
            quote=best.group.quote,
            buy_pool=best.buy.address,
            sell_pool=best.sell.address,
            buy_fee_tier=best.buy.pool.metadata.fee_tier,
            buy_fee_bps=best.buy.fee_bps,
            sell_fee_bps=best.sell.fee_bps,
            gross_spread_bps=best.gross_spread_bps,
            net_spread_bps=best.net_spread_bps,
            notional=notional,
            estimated_profit=estimated_profit,
            base_price=base_price,
            block_number=block_number,
            timestamp=get_current_timestamp(),
            depth_capped=depth_capped,
            scale_factor=scale_factor,
        )

        self.last_opportunity = opportunity
        self.opportunity_count += 1
        if self.metrics:
            self.metrics.record_opportunity(opportunity.pair_label)

        self._emit(
            f"OPPORTUNITY FOUND! {opportunity.pair_label} net "
            f"{opportunity.net_spread_bps:.2f} bps, est. profit "
            f"{format_usd(estimated_profit)}",
            severity="success",
            priority="high",
        )
        logger.info(f"Opportunity {opportunity.id}: {opportunity.to_dict()}")
        return opportunity

    def _value_groups(
        self, spreads: List[GroupSpread], reference_price: Decimal
    ) -> List[Tuple[GroupSpread, Decimal]]:
        """Pair each comparable group with the currency value of its base asset."""
        valued = []
        for spread in spreads:
            base_price = self.base_value(spread, reference_price)
            if base_price is None:
                log = logger.warning if spread.has_opportunity else logger.debug
                log(f"{spread.pair_label}: base asset has no currency valuation, skipped")
                continue
            valued.append((spread, base_price))
        return valued

    def base_value(self, spread: GroupSpread, reference_price: Decimal) -> Optional[Decimal]:
        """
        Currency value of one unit of a group's base asset.

        The reference asset is worth the reference price; a base quoted in the
        reference asset is worth mid x reference price; a base quoted in a
        currency token is worth the mid price. Anything else has no value.
        """
        group = spread.group
        reference = self.oracle.reference_group
        reference_address = reference.base.address if reference else None

        if group.base.address == reference_address:
            return reference_price
        mid = spread.mid_price
        if mid is None:
            return None
        if group.quote.address == reference_address:
            return mid * reference_price
        if group.quote.symbol in self.settings.currency_tokens:
            return mid
        return None

    async def _size(
        self, best: GroupSpread, base_price: Decimal
    ) -> Tuple[Decimal, Decimal, bool]:
        """
        Size the trade in base-asset units.

        Returns:
            Tuple of (notional, scale factor, depth capped)
        """
        s = self.settings
        global_cap = s.max_flash_loan_usd / base_price

        buy_ref = self._pool_ref(best.group, best.buy.address)
        sell_ref = self._pool_ref(best.group, best.sell.address)
        buy_depth, sell_depth = await asyncio.gather(
            self.depth_monitor.get_depth(buy_ref, best.group),
            self.depth_monitor.get_depth(sell_ref, best.group),
        )

        # Without depth there is nothing to bound a scale-up, so no scale-up
        if buy_depth is None or sell_depth is None:
            message = (
                f"Depth unavailable for {best.pair_label}; sizing from global cap only"
            )
            logger.info(message)
            self._emit(message, severity="warning")
            return global_cap, Decimal(1), False

        target = global_cap
        scale_factor = Decimal(1)
        if best.net_spread_bps >= s.exceptional_spread_bps:
            scale_factor = s.exceptional_size_multiplier
            target = global_cap * scale_factor
            logger.info(
                f"Exceptional spread {best.net_spread_bps:.2f} bps, "
                f"target size x{scale_factor}"
            )

        safe_size = self.depth_monitor.safe_size_for_legs(
            buy_depth, sell_depth, s.max_impact_pct
        )
        if safe_size < target:
            logger.info(
                f"Depth cap: {target:.6f} -> {safe_size:.6f} {best.group.base.symbol}"
            )
            return safe_size, scale_factor, True
        return target, scale_factor, False

    @staticmethod
    def _pool_ref(group: ScanGroup, address: str) -> PoolRef:
        for pool in group.pools:
            if pool.address == address:
                return pool
        raise KeyError(f"Pool {address} not in {group.label}")

    def _reference_symbol(self) -> Optional[str]:
        group = self.oracle.reference_group
        return group.label if group else None

    def _abort(self, reason: str, message: str, severity: str = "info", emit: bool = True):
        """Record a cycle that produced no opportunity."""
        if severity == "warning":
            logger.warning(message)
        else:
            logger.info(message)
        if self.metrics:
            self.metrics.record_scan_abort(reason)
        if emit:
            self._emit(message, severity=severity)

    def _emit(self, text: str, severity: str = "info", priority: str = "low"):
        if self.events is not None:
            self.events.emit(text, severity=severity, priority=priority, source="scanner")

    def get_stats(self) -> Dict:
        """Get scan statistics."""
        return {
            "scan_count": self.scan_count,
            "opportunity_count": self.opportunity_count,
            "scan_in_progress": self._scanning,
            "last_opportunity": (
                self.last_opportunity.to_dict() if self.last_opportunity else None
            ),
            "last_best_net_spread_bps": (
                float(self.last_best_spread.net_spread_bps)
                if self.last_best_spread
                else None
            ),
        }

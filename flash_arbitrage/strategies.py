"""
Flash-loan arbitrage strategy and the strategy registry.

``FlashLoanStrategy`` is the decision function a ``StrategyController``
calls every tick: scan, then either simulate the fill (dry run) or hand the
opportunity to the execution client (live). The choice is made from the one
global switch in ``RuntimeConfig``, never per strategy.
"""

from decimal import Decimal
from typing import Dict, List

from dex.executor import ExecutionClient
from dex.scanner import ArbitrageScanner

from .controller import StrategyController, StrategyState, TickOutcome, TickResult
from .exceptions import ConfigurationError, ScanInProgressError, UnknownStrategyError
from .utils import format_usd, get_logger

logger = get_logger(__name__)


class FlashLoanStrategy:
    """
    Scan-then-execute decision function.

    Args:
        scanner: Shared ArbitrageScanner
        executor: Shared ExecutionClient
        runtime_config: Global live/dry-run switch
    """

    def __init__(self, scanner: ArbitrageScanner, executor: ExecutionClient, runtime_config):
        self.scanner = scanner
        self.executor = executor
        self.runtime_config = runtime_config

        self.opportunities_found = 0
        self.trades_executed = 0
        self.successful_trades = 0
        self.simulated_fills = 0

    async def __call__(self, controller: StrategyController) -> TickResult:
        try:
            opportunity = await self.scanner.scan()
        except ScanInProgressError:
            # Another strategy shares the scanner and is mid-scan
            logger.debug(f"{controller.id}: scanner busy, skipping tick")
            return TickResult(TickOutcome.NO_SIGNAL)

        if opportunity is None:
            return TickResult(TickOutcome.NO_SIGNAL)

        self.opportunities_found += 1
        controller.log(
            f"ARB DETECTED: {opportunity.pair_label} net "
            f"{opportunity.net_spread_bps:.2f} bps | Est. profit: "
            f"{format_usd(opportunity.estimated_profit)}",
            "success",
            "high",
        )

        # One read of the switch per tick; a toggle applies from the next tick
        runtime = self.runtime_config.snapshot()
        capture = controller.config.simulated_capture
        if runtime.dry_run:
            self.simulated_fills += 1
            pnl = opportunity.estimated_profit * capture
            controller.log(
                f"[DRY RUN] Would execute {opportunity.notional:.6f} "
                f"{opportunity.base.symbol} flash loan",
                "info",
            )
            return TickResult(TickOutcome.SUCCESS, pnl_delta=pnl)

        result = await self.executor.execute(opportunity)
        self.trades_executed += 1

        if result.success:
            self.successful_trades += 1
            controller.log(
                f"SUCCESS! TX: {result.tx_hash[:18]}... | Gas: {result.gas_used}",
                "success",
                "high",
            )
            return TickResult(TickOutcome.SUCCESS, pnl_delta=opportunity.estimated_profit)

        return TickResult(TickOutcome.FAILURE, message=f"FAILED: {result.error}")

    def get_stats(self) -> Dict:
        return {
            "opportunities_found": self.opportunities_found,
            "trades_executed": self.trades_executed,
            "successful_trades": self.successful_trades,
            "simulated_fills": self.simulated_fills,
            "success_rate": (
                self.successful_trades / self.trades_executed * 100
                if self.trades_executed > 0
                else 0.0
            ),
        }


class StrategyRegistry:
    """Named collection of strategy controllers."""

    def __init__(self, events=None):
        self.events = events
        self._controllers: Dict[str, StrategyController] = {}

    def register(self, controller: StrategyController) -> None:
        if controller.id in self._controllers:
            raise ConfigurationError(f"Strategy '{controller.id}' already registered")
        self._controllers[controller.id] = controller
        logger.info(f"Registered strategy {controller.id} ({controller.name})")

    def get(self, strategy_id: str) -> StrategyController:
        controller = self._controllers.get(strategy_id)
        if controller is None:
            raise UnknownStrategyError(strategy_id)
        return controller

    def start(self, strategy_id: str) -> StrategyState:
        controller = self.get(strategy_id)
        controller.start()
        return controller.get_state()

    def stop(self, strategy_id: str) -> StrategyState:
        controller = self.get(strategy_id)
        controller.stop()
        return controller.get_state()

    def status(self, strategy_id: str) -> StrategyState:
        return self.get(strategy_id).get_state()

    def all_states(self) -> List[StrategyState]:
        return [c.get_state() for c in self._controllers.values()]

    def emergency_stop(self) -> int:
        """
        Stop every running strategy.

        Returns:
            Number of strategies that were running
        """
        stopped = sum(
            1 for c in self._controllers.values() if c.stop("Emergency stop")
        )
        if self.events is not None:
            self.events.emit(
                f"EMERGENCY STOP: {stopped} strategies halted",
                severity="error",
                priority="high",
                source="registry",
            )
        logger.warning(f"Emergency stop halted {stopped} strategies")
        return stopped

    async def drain(self) -> None:
        """Wait for in-flight ticks of every strategy."""
        for controller in self._controllers.values():
            await controller.drain()

    @property
    def total_pnl(self) -> Decimal:
        return sum((c.pnl for c in self._controllers.values()), Decimal(0))

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self._controllers

    def __len__(self) -> int:
        return len(self._controllers)

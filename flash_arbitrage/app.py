"""
Composition root.

Builds every collaborator exactly once from a ``FlashArbConfig`` and wires
them together; nothing in the project reaches for a module-level singleton.
"""

from dataclasses import dataclass
from typing import Optional

from prometheus_client import CollectorRegistry

from dex.chain import ChainClient
from dex.executor import ExecutionClient
from dex.liquidity import LiquidityDepthMonitor
from dex.price_oracle import MetadataCache, PriceOracle
from dex.scanner import ArbitrageScanner

from .config import FlashArbConfig
from .controller import StrategyController
from .events import EventSink
from .metrics import FlashArbMetrics
from .runtime_config import RuntimeConfig
from .strategies import FlashLoanStrategy, StrategyRegistry
from .utils import get_logger

logger = get_logger(__name__)


@dataclass
class Application:
    """Every long-lived component of a running controller process."""

    config: FlashArbConfig
    chain: ChainClient
    runtime_config: RuntimeConfig
    events: EventSink
    metrics: FlashArbMetrics
    oracle: PriceOracle
    depth_monitor: LiquidityDepthMonitor
    scanner: ArbitrageScanner
    executor: ExecutionClient
    strategy: FlashLoanStrategy
    registry: StrategyRegistry

    async def shutdown(self) -> None:
        """Stop every strategy and wait for in-flight ticks."""
        stopped = 0
        for state in self.registry.all_states():
            if self.registry.get(state.id).stop("Shutting down"):
                stopped += 1
        await self.registry.drain()
        logger.info(f"Shutdown complete ({stopped} strategies stopped)")


def build_application(
    config: FlashArbConfig,
    chain: Optional[ChainClient] = None,
    registry: Optional[CollectorRegistry] = None,
) -> Application:
    """
    Construct and wire the application.

    Args:
        config: Loaded configuration
        chain: RPC boundary (built from ``config.rpc_url`` if omitted)
        registry: Prometheus registry (a private one if omitted)

    Raises:
        ConfigurationError: The bot private key is malformed, or live mode is
            requested without a bot wallet and contract address
    """
    chain = chain or ChainClient(
        config.rpc_url,
        timeout_sec=config.rpc_timeout_sec,
        receipt_timeout_sec=config.receipt_timeout_sec,
    )
    runtime_config = RuntimeConfig(contract_address=config.contract_address)
    events = EventSink()
    metrics = FlashArbMetrics(registry)

    oracle = PriceOracle(
        chain,
        config.scan_groups,
        reference_group=config.reference_group,
        reference_pool=config.reference_pool,
        premium_bps=config.flash_loan_premium_bps,
        epsilon_bps=config.opportunity_epsilon_bps,
        metadata_cache=MetadataCache(),
    )
    depth_monitor = LiquidityDepthMonitor(chain, oracle)
    scanner = ArbitrageScanner(
        chain, oracle, depth_monitor, config.scanner, events=events, metrics=metrics
    )
    executor = ExecutionClient(
        chain,
        runtime_config,
        config.execution,
        private_key=config.private_key,
        events=events,
        metrics=metrics,
    )
    # The executor publishes the bot wallet, which live mode requires
    if config.live_mode:
        runtime_config.set_live_mode(True)

    strategy = FlashLoanStrategy(scanner, executor, runtime_config)
    strategy_registry = StrategyRegistry(events)
    for strategy_config in config.strategies:
        strategy_registry.register(
            StrategyController(
                strategy_config, strategy, runtime_config, events=events, metrics=metrics
            )
        )

    mode = "LIVE" if runtime_config.live_mode else "DRY RUN"
    logger.info(
        f"Application built: {len(config.scan_groups)} scan groups, "
        f"{len(strategy_registry)} strategies, mode {mode}"
    )

    return Application(
        config=config,
        chain=chain,
        runtime_config=runtime_config,
        events=events,
        metrics=metrics,
        oracle=oracle,
        depth_monitor=depth_monitor,
        scanner=scanner,
        executor=executor,
        strategy=strategy,
        registry=strategy_registry,
    )

"""
Prometheus metrics for the flash-loan arbitrage controller.

Each application owns its own ``CollectorRegistry`` so that several instances
(and tests) never collide on metric names. The control API exposes the
registry at ``/metrics``.
"""

import threading
import time
from typing import Any, Dict, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

from .utils import get_logger

logger = get_logger(__name__)

PREFIX = "flash_arbitrage"


class FlashArbMetrics:
    """
    Scan, execution and strategy metrics.

    Provides Prometheus-compatible metrics for:
    - Scan cycles and why they ended without a trade
    - Opportunities found per pair
    - Execution outcomes and pre-flight rejections
    - Strategy PnL and circuit-breaker trips
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._lock = threading.RLock()
        self._initialize_metrics()

    def _initialize_metrics(self):
        # === SCAN METRICS ===
        self.scans_total = Counter(
            f"{PREFIX}_scans_total",
            "Total number of scan cycles started",
            registry=self.registry,
        )

        self.scan_aborts_total = Counter(
            f"{PREFIX}_scan_aborts_total",
            "Scan cycles that ended without an opportunity",
            ["reason"],
            registry=self.registry,
        )

        self.opportunities_total = Counter(
            f"{PREFIX}_opportunities_total",
            "Opportunities that passed every threshold",
            ["pair"],
            registry=self.registry,
        )

        self.best_net_spread_bps = Gauge(
            f"{PREFIX}_best_net_spread_bps",
            "Best net spread seen in the last scan",
            registry=self.registry,
        )

        # === EXECUTION METRICS ===
        self.executions_total = Counter(
            f"{PREFIX}_executions_total",
            "Execution attempts by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.preflight_rejections_total = Counter(
            f"{PREFIX}_preflight_rejections_total",
            "Pre-flight rejections by gate",
            ["gate"],
            registry=self.registry,
        )

        # === STRATEGY METRICS ===
        self.strategy_pnl_usd = Gauge(
            f"{PREFIX}_strategy_pnl_usd",
            "Cumulative strategy PnL in USD",
            ["strategy_id", "mode"],
            registry=self.registry,
        )

        self.auto_pauses_total = Counter(
            f"{PREFIX}_auto_pauses_total",
            "Circuit-breaker trips",
            ["strategy_id"],
            registry=self.registry,
        )

        self.consecutive_failures = Gauge(
            f"{PREFIX}_consecutive_failures",
            "Current consecutive failure count",
            ["strategy_id"],
            registry=self.registry,
        )

    # === METRIC RECORDING METHODS ===

    def record_scan(self):
        with self._lock:
            self.scans_total.inc()

    def record_scan_abort(self, reason: str):
        """Record a scan that produced no opportunity (gas, spread, profit...)."""
        with self._lock:
            self.scan_aborts_total.labels(reason=reason).inc()

    def record_best_spread(self, net_spread_bps: float):
        with self._lock:
            self.best_net_spread_bps.set(float(net_spread_bps))

    def record_opportunity(self, pair: str):
        with self._lock:
            self.opportunities_total.labels(pair=pair).inc()

    def record_execution(self, outcome: str):
        """Record an execution attempt (success, reverted, unconfirmed, ...)."""
        with self._lock:
            self.executions_total.labels(outcome=outcome).inc()

    def record_preflight_rejection(self, gate: str):
        with self._lock:
            self.preflight_rejections_total.labels(gate=gate).inc()

    def record_pnl(self, strategy_id: str, pnl_usd: float, dry_run: bool):
        with self._lock:
            self.strategy_pnl_usd.labels(
                strategy_id=strategy_id, mode="dry_run" if dry_run else "live"
            ).set(float(pnl_usd))

    def record_failures(self, strategy_id: str, count: int):
        with self._lock:
            self.consecutive_failures.labels(strategy_id=strategy_id).set(count)

    def record_auto_pause(self, strategy_id: str):
        with self._lock:
            self.auto_pauses_total.labels(strategy_id=strategy_id).inc()

    # === EXPOSITION ===

    def render(self) -> bytes:
        """Current metrics in Prometheus text format."""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get current metrics summary"""
        return {
            "scans": self.scans_total._value.get(),
            "best_net_spread_bps": self.best_net_spread_bps._value.get(),
            "timestamp": time.time(),
        }

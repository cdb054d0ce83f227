"""
Unit tests for Prometheus metrics
"""

import pytest
from prometheus_client import CollectorRegistry

from flash_arbitrage.metrics import FlashArbMetrics


@pytest.fixture
def metrics(test_registry):
    """Create FlashArbMetrics instance with test registry"""
    return FlashArbMetrics(test_registry)


class TestFlashArbMetrics:
    """Test FlashArbMetrics functionality"""

    def test_initialization(self, metrics):
        assert metrics.registry is not None
        assert hasattr(metrics, "scans_total")
        assert hasattr(metrics, "executions_total")
        assert hasattr(metrics, "strategy_pnl_usd")

    def test_private_registry_by_default(self):
        # Two instances must not collide on metric names
        first = FlashArbMetrics()
        second = FlashArbMetrics()
        assert first.registry is not second.registry

    def test_scan_metrics(self, metrics, test_registry):
        metrics.record_scan()
        metrics.record_scan()
        metrics.record_scan_abort("spread")
        metrics.record_best_spread(12.5)
        metrics.record_opportunity("WETH/USDC")

        assert test_registry.get_sample_value("flash_arbitrage_scans_total") == 2
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_scan_aborts_total", {"reason": "spread"}
            )
            == 1
        )
        assert test_registry.get_sample_value("flash_arbitrage_best_net_spread_bps") == 12.5
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_opportunities_total", {"pair": "WETH/USDC"}
            )
            == 1
        )

    def test_execution_metrics(self, metrics, test_registry):
        metrics.record_execution("reverted")
        metrics.record_preflight_rejection("gas_price")

        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_executions_total", {"outcome": "reverted"}
            )
            == 1
        )
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_preflight_rejections_total", {"gate": "gas_price"}
            )
            == 1
        )

    def test_strategy_metrics(self, metrics, test_registry):
        metrics.record_pnl("flash-loan-arb", 42.0, dry_run=True)
        metrics.record_failures("flash-loan-arb", 4)
        metrics.record_auto_pause("flash-loan-arb")

        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_strategy_pnl_usd",
                {"strategy_id": "flash-loan-arb", "mode": "dry_run"},
            )
            == 42.0
        )
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_consecutive_failures", {"strategy_id": "flash-loan-arb"}
            )
            == 4
        )
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_auto_pauses_total", {"strategy_id": "flash-loan-arb"}
            )
            == 1
        )

    def test_render(self, metrics):
        metrics.record_scan()

        body = metrics.render().decode()

        assert "flash_arbitrage_scans_total 1.0" in body
        assert metrics.content_type.startswith("text/plain")

    def test_summary(self, metrics):
        metrics.record_scan()
        metrics.record_best_spread(7)

        summary = metrics.get_metrics_summary()

        assert summary["scans"] == 1
        assert summary["best_net_spread_bps"] == 7
        assert "timestamp" in summary

    def test_isolated_registries(self):
        registry = CollectorRegistry()
        FlashArbMetrics(registry).record_scan()
        other = CollectorRegistry()
        FlashArbMetrics(other)

        assert other.get_sample_value("flash_arbitrage_scans_total") == 0

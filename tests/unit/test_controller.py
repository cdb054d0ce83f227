"""
Unit tests for flash_arbitrage/controller.py

Drives the controller with scripted decision functions to exercise the
circuit breaker, outcome handling, overlapping ticks and lifecycle.
"""

import asyncio
from decimal import Decimal

import pytest

from flash_arbitrage.config import StrategyConfig
from flash_arbitrage.controller import (
    StrategyController,
    StrategyStatus,
    TickOutcome,
    TickResult,
)
from flash_arbitrage.events import EventSink
from flash_arbitrage.exceptions import ConfigurationError, DataError
from flash_arbitrage.metrics import FlashArbMetrics
from flash_arbitrage.runtime_config import RuntimeConfig


class Scripted:
    """Decision function that plays back a list of results or exceptions."""

    def __init__(self, *steps, default=None):
        self.steps = list(steps)
        self.default = default or TickResult(TickOutcome.NO_SIGNAL)
        self.calls = 0

    async def __call__(self, controller):
        self.calls += 1
        step = self.steps.pop(0) if self.steps else self.default
        if isinstance(step, Exception):
            raise step
        return step


FAIL = TickResult(TickOutcome.FAILURE, message="FAILED: Transaction reverted")


def make_controller(decision, max_failures=3, interval=3600.0, events=None, metrics=None):
    config = StrategyConfig(
        id="flash-loan-arb",
        name="Flash Loan Arbitrage",
        allocated_usd=Decimal(10000),
        interval_sec=interval,
        max_consecutive_failures=max_failures,
    )
    return StrategyController(
        config, decision, RuntimeConfig(), events=events, metrics=metrics
    )


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_no_signal_leaves_counter_unchanged(self):
        controller = make_controller(Scripted(FAIL, TickResult(TickOutcome.NO_SIGNAL)))

        await controller.tick()
        await controller.tick()

        assert controller.consecutive_failures == 1
        assert controller.pnl == Decimal(0)

    @pytest.mark.asyncio
    async def test_success_resets_counter_and_credits_pnl(self):
        controller = make_controller(
            Scripted(FAIL, FAIL, TickResult(TickOutcome.SUCCESS, Decimal("12.5")))
        )

        for _ in range(3):
            await controller.tick()

        assert controller.consecutive_failures == 0
        assert controller.pnl == Decimal("12.5")
        assert controller.auto_paused is False

    @pytest.mark.asyncio
    async def test_exception_counts_as_failure(self):
        controller = make_controller(Scripted(DataError("Reference price unavailable")))

        await controller.tick()

        assert controller.consecutive_failures == 1
        assert controller.last_error == "Scan error: Reference price unavailable"
        assert "Scan error" in controller.get_state().logs[0]

    @pytest.mark.asyncio
    async def test_configuration_error_enters_error_state(self):
        controller = make_controller(Scripted(ConfigurationError("Contract address not configured")))
        controller.start()

        await controller.tick()

        assert controller.status == StrategyStatus.ERROR
        assert controller.last_error == "Contract address not configured"
        await controller.drain()


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_auto_pause_at_threshold(self, test_registry):
        metrics = FlashArbMetrics(test_registry)
        controller = make_controller(Scripted(default=FAIL), max_failures=3, metrics=metrics)

        for _ in range(2):
            await controller.tick()
        assert controller.auto_paused is False

        await controller.tick()

        assert controller.auto_paused is True
        assert controller.status == StrategyStatus.IDLE
        assert controller.consecutive_failures == 3
        assert "Auto-pausing" in controller.get_state().logs[0]
        assert test_registry.get_sample_value(
            "flash_arbitrage_auto_pauses_total", {"strategy_id": "flash-loan-arb"}
        ) == 1

    @pytest.mark.asyncio
    async def test_loop_stops_after_auto_pause(self):
        decision = Scripted(default=FAIL)
        controller = make_controller(decision, max_failures=3, interval=0.01)

        controller.start()
        await asyncio.sleep(0.3)
        await controller.drain()

        assert controller.auto_paused is True
        assert controller.is_running is False
        assert decision.calls == 3

    @pytest.mark.asyncio
    async def test_restart_clears_failures(self):
        controller = make_controller(Scripted(default=FAIL), max_failures=1)
        await controller.tick()
        assert controller.auto_paused

        assert controller.start() is True
        assert controller.consecutive_failures == 0
        assert controller.auto_paused is False
        controller.stop()
        await controller.drain()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self):
        controller = make_controller(Scripted())

        assert controller.start() is True
        assert controller.start() is False
        assert controller.status == StrategyStatus.RUNNING

        assert controller.stop() is True
        assert controller.stop() is False
        assert controller.status == StrategyStatus.IDLE
        await controller.drain()

    @pytest.mark.asyncio
    async def test_start_ticks_immediately(self):
        decision = Scripted()
        controller = make_controller(decision)

        controller.start()
        await asyncio.sleep(0.05)

        assert decision.calls == 1
        controller.stop()
        await controller.drain()

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self):
        release = asyncio.Event()

        async def slow(controller):
            await release.wait()
            return TickResult(TickOutcome.NO_SIGNAL)

        controller = make_controller(slow)
        first = asyncio.create_task(controller.tick())
        await asyncio.sleep(0)
        assert controller.tick_in_flight

        assert await controller.tick() is False

        release.set()
        assert await first is True
        assert controller.ticks == 1

    @pytest.mark.asyncio
    async def test_stop_lets_in_flight_tick_finish(self):
        release = asyncio.Event()

        async def slow(controller):
            await release.wait()
            return TickResult(TickOutcome.SUCCESS, Decimal(3))

        controller = make_controller(slow)
        controller.start()
        await asyncio.sleep(0.01)
        controller.stop()

        release.set()
        await controller.drain()

        assert controller.pnl == Decimal(3)


class TestState:
    @pytest.mark.asyncio
    async def test_logs_keep_five_newest_first(self):
        controller = make_controller(Scripted())
        for i in range(7):
            controller.log(f"line {i}")

        logs = controller.get_state().logs

        assert len(logs) == 5
        assert logs[0].endswith("line 6")
        assert logs[-1].endswith("line 2")

    def test_log_goes_to_event_feed(self):
        events = EventSink()
        controller = make_controller(Scripted(), events=events)

        controller.log("hello", "success", "high")

        [event] = events.recent()
        assert event.source == "flash-loan-arb"
        assert event.severity == "success"
        assert event.priority == "high"

    def test_state_snapshot(self):
        controller = make_controller(Scripted())

        state = controller.get_state().to_dict()

        assert state["id"] == "flash-loan-arb"
        assert state["status"] == "IDLE"
        assert state["allocated"] == 10000.0
        assert state["dry_run"] is True
        assert state["pnl"] == 0.0

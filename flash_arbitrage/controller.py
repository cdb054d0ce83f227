"""
Strategy controller.

Drives one strategy through ``IDLE -> RUNNING -> IDLE``: an immediate tick on
start, then one tick per interval on an asyncio task. The controller owns the
strategy's state (status, PnL, recent logs, failure counter) and applies the
outcome reported by the decision function after every tick.

Outcome handling:
- no signal: failure counter unchanged
- success: counter reset, PnL credited
- failure (exception, pre-flight rejection, revert): counter incremented;
  at ``max_consecutive_failures`` the strategy auto-pauses to IDLE
- ConfigurationError from the decision function: status ERROR
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Deque, Optional, Set, Tuple

from .config import StrategyConfig
from .exceptions import ConfigurationError
from .utils import clock_time, get_current_timestamp, get_logger, timestamp_to_iso

logger = get_logger(__name__)

LOG_HISTORY = 5


class StrategyStatus(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    ERROR = "ERROR"


class TickOutcome(str, Enum):
    NO_SIGNAL = "no_signal"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class TickResult:
    """What one tick of the decision function produced."""

    outcome: TickOutcome
    pnl_delta: Decimal = Decimal(0)
    message: Optional[str] = None


@dataclass(frozen=True)
class StrategyState:
    """
    Snapshot of a strategy for display; never a live reference.

    Attributes:
        logs: Most recent log lines, newest first
    """

    id: str
    name: str
    status: StrategyStatus
    pnl: Decimal
    allocated: Decimal
    logs: Tuple[str, ...]
    consecutive_failures: int
    dry_run: bool
    auto_paused: bool
    ticks: int
    last_update: str
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "pnl": float(self.pnl),
            "allocated": float(self.allocated),
            "logs": list(self.logs),
            "consecutive_failures": self.consecutive_failures,
            "dry_run": self.dry_run,
            "auto_paused": self.auto_paused,
            "ticks": self.ticks,
            "last_update": self.last_update,
            "last_error": self.last_error,
        }


DecisionFn = Callable[["StrategyController"], Awaitable[TickResult]]


class StrategyController:
    """
    Interval loop and state machine for one strategy.

    Args:
        config: Strategy configuration
        decision: Async callable run once per tick
        runtime_config: Global live/dry-run switch
        events: Optional EventSink
        metrics: Optional FlashArbMetrics
    """

    def __init__(
        self,
        config: StrategyConfig,
        decision: DecisionFn,
        runtime_config,
        events=None,
        metrics=None,
    ):
        self.config = config
        self.decision = decision
        self.runtime_config = runtime_config
        self.events = events
        self.metrics = metrics

        self.status = StrategyStatus.IDLE
        self.pnl = Decimal(0)
        self.consecutive_failures = 0
        self.auto_paused = False
        self.ticks = 0
        self.last_error: Optional[str] = None
        self._logs: Deque[str] = deque(maxlen=LOG_HISTORY)

        self._tick_in_flight = False
        self._loop_task: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def dry_run(self) -> bool:
        return self.runtime_config.dry_run

    @property
    def is_running(self) -> bool:
        return self.status == StrategyStatus.RUNNING

    @property
    def tick_in_flight(self) -> bool:
        return self._tick_in_flight

    # === LIFECYCLE ===

    def start(self) -> bool:
        """
        Begin ticking. Must be called from within a running event loop.

        Returns:
            False if the strategy was already running
        """
        if self.is_running:
            return False

        self.status = StrategyStatus.RUNNING
        self.auto_paused = False
        self.consecutive_failures = 0
        self.last_error = None
        mode = "[DRY RUN]" if self.dry_run else "[LIVE]"
        self.log(f"{mode} Strategy started", "success")

        self._loop_task = asyncio.get_running_loop().create_task(
            self._run_loop(), name=f"strategy-{self.id}"
        )
        return True

    def stop(self, reason: str = "Strategy stopped") -> bool:
        """
        Stop ticking. An in-flight tick is allowed to finish.

        Returns:
            False if the strategy was not running
        """
        was_running = self.is_running
        self._cancel_loop()
        if not was_running:
            return False

        self.status = StrategyStatus.IDLE
        self.log(reason, "warning")
        return True

    def _cancel_loop(self):
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
        self._loop_task = None

    async def _run_loop(self):
        while self.is_running:
            # Ticks run as separate tasks so cancelling the loop never
            # interrupts one mid-way
            task = asyncio.get_running_loop().create_task(self.tick())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)
            await asyncio.sleep(self.config.interval_sec)

    async def drain(self):
        """Wait for every in-flight tick to finish."""
        if self._tick_tasks:
            await asyncio.gather(*list(self._tick_tasks), return_exceptions=True)

    # === TICK ===

    async def tick(self) -> bool:
        """
        Run the decision function once and apply its outcome.

        Returns:
            False if skipped because a previous tick is still in flight
        """
        if self._tick_in_flight:
            logger.debug(f"{self.id}: previous tick still in flight, skipping")
            return False

        self._tick_in_flight = True
        try:
            self.ticks += 1
            try:
                result = await self.decision(self)
            except ConfigurationError as e:
                self._enter_error(e)
                return True
            except Exception as e:
                logger.exception(f"{self.id}: tick failed")
                result = TickResult(TickOutcome.FAILURE, message=f"Scan error: {e}")

            self._apply(result)
            return True
        finally:
            self._tick_in_flight = False

    def _apply(self, result: TickResult):
        if result.outcome == TickOutcome.NO_SIGNAL:
            return

        if result.outcome == TickOutcome.SUCCESS:
            self.consecutive_failures = 0
            self.pnl += result.pnl_delta
            if self.metrics:
                self.metrics.record_pnl(self.id, self.pnl, self.dry_run)
                self.metrics.record_failures(self.id, 0)
            return

        self.consecutive_failures += 1
        self.last_error = result.message
        if result.message:
            self.log(result.message, "error")
        if self.metrics:
            self.metrics.record_failures(self.id, self.consecutive_failures)

        if self.consecutive_failures >= self.config.max_consecutive_failures:
            self._auto_pause()

    def _auto_pause(self):
        self._cancel_loop()
        self.status = StrategyStatus.IDLE
        self.auto_paused = True
        self.log(
            f"{self.consecutive_failures} consecutive failures. Auto-pausing strategy.",
            "error",
            "high",
        )
        if self.metrics:
            self.metrics.record_auto_pause(self.id)

    def _enter_error(self, error: ConfigurationError):
        self._cancel_loop()
        self.status = StrategyStatus.ERROR
        self.last_error = str(error)
        self.log(f"Configuration error: {error}", "error", "high")

    # === STATE ===

    def log(self, message: str, severity: str = "info", priority: str = "low"):
        """Record a line in the strategy's recent logs and the event feed."""
        self._logs.appendleft(f"[{clock_time()}] {message}")
        if self.events is not None:
            self.events.emit(message, severity=severity, priority=priority, source=self.id)
        else:
            logger.info(f"[{self.id}] {message}")

    def get_state(self) -> StrategyState:
        return StrategyState(
            id=self.id,
            name=self.name,
            status=self.status,
            pnl=self.pnl,
            allocated=self.config.allocated_usd,
            logs=tuple(self._logs),
            consecutive_failures=self.consecutive_failures,
            dry_run=self.dry_run,
            auto_paused=self.auto_paused,
            ticks=self.ticks,
            last_update=timestamp_to_iso(get_current_timestamp()),
            last_error=self.last_error,
        )

"""
Intel event feed.

Every scan decision, execution attempt and strategy state change is appended
here as an ``IntelEvent``. The sink keeps a bounded history for the control
API and fans each event out to live subscribers (the websocket stream).
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Callable, Deque, Dict, List, Optional

from .utils import clock_time, get_current_timestamp, get_logger

logger = get_logger("flash_arbitrage.events")

SEVERITIES = ("info", "success", "warning", "error")
PRIORITIES = ("low", "normal", "high")

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class IntelEvent:
    """
    One entry in the operator feed.

    Attributes:
        time: Wall-clock time of day (HH:MM:SS)
        text: Human-readable message
        severity: info, success, warning or error
        priority: low, normal or high
        source: Emitting component or strategy id
        timestamp: Unix seconds
    """

    time: str
    text: str
    severity: str
    priority: str
    source: str
    timestamp: float

    def to_dict(self) -> Dict:
        return asdict(self)


class EventSink:
    """
    Append-only event buffer with subscriber fan-out.

    Args:
        max_events: Number of events kept for ``recent()``
    """

    def __init__(self, max_events: int = 200):
        self._events: Deque[IntelEvent] = deque(maxlen=max_events)
        self._subscribers: List[Callable[[IntelEvent], None]] = []

    def emit(
        self,
        text: str,
        severity: str = "info",
        priority: str = "normal",
        source: str = "system",
    ) -> IntelEvent:
        """Record an event, log it and notify subscribers."""
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {severity}")
        if priority not in PRIORITIES:
            raise ValueError(f"Unknown priority: {priority}")

        now = get_current_timestamp()
        event = IntelEvent(
            time=clock_time(now),
            text=text,
            severity=severity,
            priority=priority,
            source=source,
            timestamp=now,
        )
        self._events.append(event)
        logger.log(_LOG_LEVELS[severity], f"[{source}] {text}")

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Event subscriber failed, removing it: {e}")
                self._unsubscribe(callback)

        return event

    def subscribe(self, callback: Callable[[IntelEvent], None]) -> Callable[[], None]:
        """
        Register a callback for every future event.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)
        return lambda: self._unsubscribe(callback)

    def _unsubscribe(self, callback: Callable[[IntelEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def recent(self, limit: Optional[int] = None, source: Optional[str] = None) -> List[IntelEvent]:
        """Most recent events, oldest first."""
        events = list(self._events)
        if source is not None:
            events = [e for e in events if e.source == source]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def __len__(self) -> int:
        return len(self._events)

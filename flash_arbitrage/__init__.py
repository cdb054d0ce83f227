"""
Flash-Loan Arbitrage Controller.

Monitors Base DEX pools for cross-venue price discrepancies and triggers
flash-loan arbitrage through an on-chain executor contract, under a
pre-flight checked, circuit-broken control loop. Runs in dry-run mode unless
explicitly switched live.

The ``dex`` package imports from here, so only modules that do not depend on
``dex`` are re-exported.
"""

PROJECT_NAME = "flash-arbitrage"

from flash_arbitrage.version import __version__ as VERSION

# Export main components for easier imports
from flash_arbitrage.exceptions import (
    FlashArbitrageError,
    ConfigurationError,
    ValidationError,
    DataError,
    NetworkError,
    ExecutionError,
    ScanInProgressError,
    UnknownStrategyError,
)
from flash_arbitrage.runtime_config import RuntimeConfig
from flash_arbitrage.events import EventSink, IntelEvent

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "FlashArbitrageError",
    "ConfigurationError",
    "ValidationError",
    "DataError",
    "NetworkError",
    "ExecutionError",
    "ScanInProgressError",
    "UnknownStrategyError",
    "RuntimeConfig",
    "EventSink",
    "IntelEvent",
]

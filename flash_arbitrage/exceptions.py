"""
Exception hierarchy for the flash-loan arbitrage controller.

Provides specific exception types for the error categories the scan/execute
loop distinguishes: configuration problems are fatal, data and network
problems are transient, execution problems count against the circuit breaker.
"""

from typing import Any, Dict, Optional


class FlashArbitrageError(Exception):
    """Base exception for all flash-loan arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(FlashArbitrageError):
    """Raised when there are configuration-related issues."""

    pass


class ValidationError(ConfigurationError):
    """Raised when a configuration file fails schema validation."""

    pass


class DataError(FlashArbitrageError):
    """Raised when on-chain market data is missing or unusable for a cycle."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        symbol: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.symbol = symbol


class NetworkError(FlashArbitrageError):
    """Raised when an RPC call fails or times out."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class ExecutionError(FlashArbitrageError):
    """Raised when a strategy tick fails outside of a classified result."""

    def __init__(
        self,
        message: str,
        strategy: Optional[str] = None,
        opportunity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.strategy = strategy
        self.opportunity_id = opportunity_id


class ScanInProgressError(ExecutionError):
    """Raised when a scan is requested while the previous one is still running."""

    pass


class UnknownStrategyError(FlashArbitrageError):
    """Raised when a control request names a strategy that is not registered."""

    def __init__(self, strategy_id: str):
        super().__init__(f"Unknown strategy: {strategy_id}", {"id": strategy_id})
        self.strategy_id = strategy_id

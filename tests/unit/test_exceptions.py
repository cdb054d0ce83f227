"""
Unit tests for the exception hierarchy
"""

import pytest

from flash_arbitrage.exceptions import (
    ConfigurationError,
    DataError,
    ExecutionError,
    FlashArbitrageError,
    NetworkError,
    ScanInProgressError,
    UnknownStrategyError,
    ValidationError,
)


class TestExceptionHierarchy:
    @pytest.mark.parametrize(
        "exc_class",
        [
            ConfigurationError,
            ValidationError,
            DataError,
            NetworkError,
            ExecutionError,
            ScanInProgressError,
        ],
    )
    def test_all_derive_from_base(self, exc_class):
        assert issubclass(exc_class, FlashArbitrageError)

    def test_validation_is_configuration(self):
        assert issubclass(ValidationError, ConfigurationError)

    def test_scan_in_progress_is_execution_error(self):
        assert issubclass(ScanInProgressError, ExecutionError)


class TestExceptionDetails:
    def test_details_default_to_empty(self):
        assert ConfigurationError("bad").details == {}

    def test_data_error_context(self):
        error = DataError("no price", source="price_oracle", symbol="WETH/USDC")
        assert error.source == "price_oracle"
        assert error.symbol == "WETH/USDC"
        assert str(error) == "no price"

    def test_network_error_context(self):
        error = NetworkError("timeout", endpoint="https://mainnet.base.org", status_code=504)
        assert error.endpoint == "https://mainnet.base.org"
        assert error.status_code == 504

    def test_unknown_strategy(self):
        error = UnknownStrategyError("gamma")
        assert error.strategy_id == "gamma"
        assert error.details == {"id": "gamma"}
        assert "gamma" in str(error)

"""
Unit tests for flash_arbitrage/utils.py
"""

import logging
from decimal import Decimal

import pytest

from flash_arbitrage.utils import (
    clock_time,
    format_usd,
    from_base_units,
    get_current_millis,
    get_current_timestamp,
    get_logger,
    is_valid_address,
    is_valid_private_key,
    normalize_private_key,
    timestamp_to_iso,
    to_base_units,
)


class TestTimestamps:
    def test_millis_tracks_seconds(self):
        assert abs(get_current_millis() / 1000 - get_current_timestamp()) < 1

    def test_iso_is_utc(self):
        assert timestamp_to_iso(0) == "1970-01-01T00:00:00+00:00"

    def test_clock_time_format(self):
        text = clock_time(0)
        assert len(text) == 8
        assert text.count(":") == 2


class TestTokenAmounts:
    def test_to_base_units_truncates(self):
        assert to_base_units(Decimal("1.5"), 18) == 15 * 10**17
        assert to_base_units(Decimal("0.0000001"), 6) == 0

    def test_from_base_units(self):
        assert from_base_units(2_500_000, 6) == Decimal("2.5")


class TestValidation:
    @pytest.mark.parametrize(
        "address,expected",
        [
            ("0x" + "ab" * 20, True),
            ("0x" + "AB" * 20, True),
            ("0x" + "ab" * 19, False),
            ("ab" * 20, False),
            (None, False),
            (123, False),
        ],
    )
    def test_is_valid_address(self, address, expected):
        assert is_valid_address(address) is expected

    def test_private_key_validation(self):
        assert is_valid_private_key("11" * 32)
        assert is_valid_private_key("0x" + "11" * 32)
        assert not is_valid_private_key("0x1234")
        assert not is_valid_private_key(None)

    def test_normalize_private_key(self):
        assert normalize_private_key("11" * 32) == "0x" + "11" * 32
        assert normalize_private_key("0x" + "11" * 32) == "0x" + "11" * 32


class TestFormatting:
    def test_format_usd(self):
        assert format_usd(Decimal("1234.5")) == "$1,234.50"


class TestLogging:
    def test_get_logger_returns_configured_logger(self):
        logger = get_logger("flash_arbitrage.test_utils")
        assert isinstance(logger, logging.Logger)
        assert logger.handlers

    def test_get_logger_is_cached(self):
        assert get_logger("flash_arbitrage.same") is get_logger("flash_arbitrage.same")

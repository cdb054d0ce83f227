"""
Common utilities and helper functions for the flash-loan arbitrage controller.

This module provides centralized helpers for logging, timestamp handling,
basis-point arithmetic and the input validation used by the control surface.
"""

import logging
import re
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Union

BPS_DENOMINATOR = Decimal("10000")

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


# Timestamp utilities
def get_current_timestamp() -> float:
    """Get current Unix timestamp as float."""
    return time.time()


def get_current_millis() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def timestamp_to_iso(timestamp: float) -> str:
    """Convert Unix timestamp to ISO 8601 string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def clock_time(timestamp: Optional[float] = None) -> str:
    """Format a timestamp as a 24h wall-clock string (HH:MM:SS)."""
    ts = get_current_timestamp() if timestamp is None else timestamp
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")


# Token amount utilities
def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a human token amount to integer base units (truncating)."""
    return int(amount * (Decimal(10) ** decimals))


def from_base_units(amount: int, decimals: int) -> Decimal:
    """Convert integer base units to a human token amount."""
    return Decimal(amount) / (Decimal(10) ** decimals)


# Validation utilities
def is_valid_address(address: Any) -> bool:
    """Check for a 0x-prefixed, 40 hex character account or contract address."""
    return isinstance(address, str) and bool(_ADDRESS_RE.match(address))


def is_valid_private_key(key: Any) -> bool:
    """Check for 64 hex characters, with or without a 0x prefix."""
    return isinstance(key, str) and bool(_PRIVATE_KEY_RE.match(key))


def normalize_private_key(key: str) -> str:
    """Return the key with a 0x prefix."""
    return key if key.startswith("0x") else f"0x{key}"


def format_usd(value: Union[Decimal, float]) -> str:
    """Format a currency amount for log lines."""
    return f"${float(value):,.2f}"


# Logging utilities
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s:%(lineno)d | %(message)s"


def get_logger(name: str, level: Union[str, int] = logging.INFO) -> logging.Logger:
    """
    Return the named logger, attaching a console handler on first use.

    Library code logs through this before the CLI has configured the root
    logger; ``logging_config.setup`` later detaches these handlers from
    root propagation so each record prints once.
    """
    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(handler)

    return logger

"""
Venue readers for the two supported AMM families.
"""

from . import v2, v3
from .v3 import price_from_sqrt_price_x96, virtual_reserves

__all__ = ["v2", "v3", "price_from_sqrt_price_x96", "virtual_reserves"]

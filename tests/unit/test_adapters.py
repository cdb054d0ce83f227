"""
Unit tests for the V2/V3 venue readers.
"""

from decimal import Decimal

import pytest

from conftest import POOL_A, POOL_C, USDC, WETH, FakeChain
from dex.adapters import v2, v3
from dex.types import PoolRef

Q96 = 2**96


class TestV3Math:
    def test_unit_sqrt_price_is_price_one(self):
        assert v3.price_from_sqrt_price_x96(Q96) == Decimal(1)

    def test_price_is_square_of_sqrt_ratio(self):
        # sqrtP = 2 -> price 4
        assert v3.price_from_sqrt_price_x96(2 * Q96) == Decimal(4)
        # sqrtP = 1/2 -> price 0.25
        assert v3.price_from_sqrt_price_x96(Q96 // 2) == Decimal("0.25")

    def test_large_sqrt_price_does_not_overflow(self):
        # Near the uint160 ceiling the square needs ~320 bits
        sqrt_price = 2**159
        price = v3.price_from_sqrt_price_x96(sqrt_price)
        assert price == Decimal(2**126)

    def test_non_positive_sqrt_price_rejected(self):
        with pytest.raises(ValueError):
            v3.price_from_sqrt_price_x96(0)

    def test_fee_tier_to_bps(self):
        assert v3.fee_tier_to_bps(500) == Decimal(5)
        assert v3.fee_tier_to_bps(3000) == Decimal(30)
        assert v3.fee_tier_to_bps(100) == Decimal(1)

    def test_virtual_reserves_at_unit_price(self):
        reserve0, reserve1 = v3.virtual_reserves(10**18, Q96)
        assert reserve0 == Decimal(10**18)
        assert reserve1 == Decimal(10**18)

    def test_virtual_reserves_uninitialized_pool(self):
        assert v3.virtual_reserves(10**18, 0) == (Decimal(0), Decimal(0))


class TestV2Math:
    def test_spot_price_is_reserve_ratio(self):
        assert v2.spot_price(1000, 3000) == Decimal(3)

    def test_empty_reserve_has_no_price(self):
        assert v2.spot_price(0, 3000) is None
        assert v2.spot_price(1000, 0) is None


class TestMetadataReads:
    @pytest.mark.asyncio
    async def test_v3_metadata_reads_fee_on_chain(self):
        chain = FakeChain()
        chain.add_v3_pool(POOL_C, WETH, USDC, Q96, 10**18, fee=3000)
        pool = PoolRef(POOL_C, "v3", "uniswap_v3")

        metadata = await v3.read_metadata(chain, pool)

        assert metadata.token0 == WETH.address
        assert metadata.token1 == USDC.address
        assert metadata.fee_tier == 3000
        assert metadata.fee_bps == Decimal(30)
        assert metadata.kind == "v3"

    @pytest.mark.asyncio
    async def test_v2_metadata_takes_fee_from_config(self):
        chain = FakeChain()
        chain.add_v2_pool(POOL_A, WETH, USDC, 10**18, 3000 * 10**6)
        pool = PoolRef(POOL_A, "v2", "aerodrome", fee_bps=30)

        metadata = await v2.read_metadata(chain, pool)

        assert metadata.fee_bps == Decimal(30)
        assert metadata.fee_tier == 3000
        assert metadata.kind == "v2"

    @pytest.mark.asyncio
    async def test_read_state_per_venue(self):
        chain = FakeChain()
        chain.add_v3_pool(POOL_C, WETH, USDC, Q96, 12345, tick=-10)
        chain.add_v2_pool(POOL_A, WETH, USDC, 7, 11)

        assert await v3.read_state(chain, PoolRef(POOL_C, "v3", "uniswap_v3")) == (Q96, -10, 12345)
        assert await v2.read_state(chain, PoolRef(POOL_A, "v2", "aerodrome")) == (7, 11)

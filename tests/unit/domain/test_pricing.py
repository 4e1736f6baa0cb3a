"""
Unit tests for tick to price conversion (offline-only).

Reference values are what the node's own tooling reports for the same ticks.
"""

import pytest

from pool_orderbook.config.settings import AssetSettings
from pool_orderbook.domain.errors import UnknownAssetError
from pool_orderbook.domain.models import AssetPair
from pool_orderbook.domain.pricing import asset_decimals, freeze_decimals, tick_to_price

DECIMALS = freeze_decimals(AssetSettings().decimals)


class TestTickToPrice:
    def test_btc_usdc(self):
        """
        GIVEN: BTC (8 decimals) quoted in USDC (6 decimals) at tick 57040
        WHEN: converted
        THEN: ~29997.97 USDC per BTC
        """
        price = tick_to_price(57040, AssetPair("BTC", "USDC"), DECIMALS)
        assert price == pytest.approx(29997.9703993, abs=3e-8)

    def test_dot_usdc_negative_tick(self):
        price = tick_to_price(-69082, AssetPair("DOT", "USDC"), DECIMALS)
        assert price == pytest.approx(9.99900670, abs=3e-8)

    @pytest.mark.parametrize("tick", [-887272, -69082, -1, 0, 1, 57040, 887271])
    @pytest.mark.parametrize("pair", [AssetPair("BTC", "USDC"), AssetPair("ETH", "USDC"), AssetPair("DOT", "FLIP")])
    def test_strictly_increasing_in_tick(self, tick, pair):
        assert tick_to_price(tick, pair, DECIMALS) < tick_to_price(tick + 1, pair, DECIMALS)

    def test_tick_zero_same_decimals(self):
        assert tick_to_price(0, AssetPair("ETH", "FLIP"), DECIMALS) == 1.0

    def test_tick_zero_scales_by_decimal_difference(self):
        # ETH has 18 decimals, USDC 6: one unit ratio is 10**12 atomic units
        assert tick_to_price(0, AssetPair("ETH", "USDC"), DECIMALS) == pytest.approx(1e12)

    def test_unknown_asset(self):
        with pytest.raises(UnknownAssetError, match="SOL"):
            tick_to_price(0, AssetPair("SOL", "USDC"), DECIMALS)


class TestDecimalsTable:
    def test_default_table(self):
        assert dict(DECIMALS) == {"DOT": 10, "ETH": 18, "FLIP": 18, "BTC": 8, "USDC": 6}

    def test_freeze_normalizes_symbols(self):
        frozen = freeze_decimals({"btc": "8"})
        assert asset_decimals(frozen, "BTC") == 8

    def test_frozen_table_is_read_only(self):
        with pytest.raises(TypeError):
            DECIMALS["BTC"] = 9  # type: ignore[index]

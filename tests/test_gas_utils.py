"""
Unit tests for pipeline/gas_utils.py.
"""

import pytest

from pipeline.gas_utils import adjust_gas_price


class TestAdjustGasPrice:
    def test_ten_percent_bump(self):
        assert adjust_gas_price(1_000_000_000) == 1_100_000_000

    def test_no_bump(self):
        assert adjust_gas_price(123, bump_pct=0.0) == 123

    def test_ceiling(self):
        assert adjust_gas_price(50_000_000_000, ceiling_wei=52_000_000_000) == 52_000_000_000

    def test_below_ceiling_untouched(self):
        assert adjust_gas_price(10, ceiling_wei=1_000) == 11

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            adjust_gas_price(-1)

"""
Unit tests for chain/codec.py -- arbitrage params ABI encoding.
"""

import pytest

from chain.codec import ArbitrageParams, decode_params, encode_params
from chain.errors import InvalidParams

WETH = "0x4200000000000000000000000000000000000006"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


class TestCodec:
    def test_round_trip_lowercases_addresses(self):
        params = ArbitrageParams(USDC, WETH, 10**6, 3000, 1, True)
        decoded = decode_params(encode_params(params))
        assert decoded.token_in == USDC.lower()
        assert decoded.token_out == WETH
        assert decoded.amount_in == 10**6
        assert (decoded.fee_leg1, decoded.fee_leg2) == (3000, 1)
        assert decoded.use_alternate_venue is True

    def test_layout_is_six_static_words(self):
        encoded = encode_params(ArbitrageParams(WETH, USDC, 1, 500, 500))
        assert len(encoded) == 6 * 32
        assert encoded[2 * 32:3 * 32] == (1).to_bytes(32, "big")

    def test_zero_amount_rejected(self):
        with pytest.raises(ValueError):
            encode_params(ArbitrageParams(WETH, USDC, 0, 3000, 500))

    def test_fee_out_of_uint24_rejected(self):
        with pytest.raises(ValueError):
            encode_params(ArbitrageParams(WETH, USDC, 1, 2**24, 500))

    def test_truncated_input_rejected(self):
        encoded = encode_params(ArbitrageParams(WETH, USDC, 1, 3000, 500))
        with pytest.raises(InvalidParams):
            decode_params(encoded[:100])

    def test_garbage_rejected(self):
        with pytest.raises(InvalidParams):
            decode_params(b"\x01\x02")

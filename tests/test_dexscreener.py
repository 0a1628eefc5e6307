"""
Tests for client/dexscreener.py -- price-feed parsing and transport errors.
"""

import httpx
import pytest
import respx

from client.dexscreener import FeedUnavailable, get_token_pairs, parse_pair

HOST = "https://feed.test/latest/dex"
TOKEN = "0x4200000000000000000000000000000000000006"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


def _raw_pair(**overrides) -> dict:
    raw = {
        "chainId": "base",
        "dexId": "uniswap",
        "pairAddress": "0xPAIR1",
        "baseToken": {"address": TOKEN, "symbol": "WETH"},
        "quoteToken": {"address": USDC, "symbol": "USDC"},
        "priceUsd": "2500.12",
        "priceNative": "2499.87",
        "liquidity": {"usd": 150000.5},
        "volume": {"h24": 42000},
    }
    raw.update(overrides)
    return raw


class TestParsePair:
    def test_valid_pair(self):
        pair = parse_pair(_raw_pair())
        assert pair.venue == "uniswap"
        assert pair.price == pytest.approx(2500.12)
        assert pair.liquidity_usd == pytest.approx(150000.5)
        assert pair.volume_24h == 42000.0
        assert pair.quote_token == USDC.lower()
        assert pair.pair_address == "0xpair1"
        assert pair.price_native == pytest.approx(2499.87)

    @pytest.mark.parametrize("overrides", [
        {"priceUsd": None},
        {"priceUsd": "not-a-number"},
        {"liquidity": None},
        {"liquidity": {}},
        {"baseToken": None},
        {"quoteToken": {"symbol": "USDC"}},
    ])
    def test_incomplete_pair_skipped(self, overrides):
        assert parse_pair(_raw_pair(**overrides)) is None

    def test_missing_native_price_is_none(self):
        raw = _raw_pair()
        del raw["priceNative"]
        assert parse_pair(raw).price_native is None

    def test_missing_volume_defaults_to_zero(self):
        raw = _raw_pair()
        del raw["volume"]
        assert parse_pair(raw).volume_24h == 0.0


class TestGetTokenPairs:
    @respx.mock
    def test_filters_by_chain(self):
        respx.get(f"{HOST}/tokens/{TOKEN}").mock(return_value=httpx.Response(200, json={
            "pairs": [
                _raw_pair(),
                _raw_pair(chainId="ethereum", dexId="sushiswap"),
                _raw_pair(dexId="aerodrome", priceUsd=None),
            ],
        }))

        pairs = get_token_pairs(HOST, TOKEN, "base")

        assert [p.venue for p in pairs] == ["uniswap"]

    @respx.mock
    def test_null_pairs(self):
        respx.get(f"{HOST}/tokens/{TOKEN}").mock(return_value=httpx.Response(200, json={"pairs": None}))
        assert get_token_pairs(HOST, TOKEN, "base") == []

    @respx.mock
    def test_non_json_body(self):
        respx.get(f"{HOST}/tokens/{TOKEN}").mock(return_value=httpx.Response(200, text="<html>"))
        assert get_token_pairs(HOST, TOKEN, "base") == []

    @respx.mock
    def test_error_status_raises(self):
        respx.get(f"{HOST}/tokens/{TOKEN}").mock(return_value=httpx.Response(503))
        with pytest.raises(FeedUnavailable):
            get_token_pairs(HOST, TOKEN, "base")

    @respx.mock
    def test_transport_error_raises(self):
        respx.get(f"{HOST}/tokens/{TOKEN}").mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(FeedUnavailable):
            get_token_pairs(HOST, TOKEN, "base")

"""
Plausibility filters applied to feed pairs before they become opportunities.
Anything that fails a filter is discarded silently; it is noise or corrupt
feed data, never an error.
"""

from __future__ import annotations

from scanner.models import PairQuote


def price_delta_pct(price_a: float, price_b: float) -> float:
    """|a - b| as a percentage of the two prices' average."""
    avg = (price_a + price_b) / 2.0
    return abs(price_a - price_b) / avg * 100.0


def is_plausible_price(price: float, min_price: float = 1e-6, max_price: float = 1e6) -> bool:
    """Strictly positive and inside the band real quotes fall in."""
    return price > 0 and min_price <= price <= max_price


def within_price_ratio(price_a: float, price_b: float, max_ratio: float = 10.0) -> bool:
    """
    Reject pairs whose prices differ by more than max_ratio. Such gaps mean the
    two pairs use different decimal or quote conventions, not a real spread.
    """
    low, high = sorted((price_a, price_b))
    if low <= 0:
        return False
    return high / low <= max_ratio


def has_min_liquidity(pair: PairQuote, min_liquidity_usd: float) -> bool:
    """Liquidity strictly above the floor. Exactly at the floor is rejected."""
    return pair.liquidity_usd > min_liquidity_usd


def in_delta_window(delta_pct: float, lower_pct: float, upper_pct: float) -> bool:
    """Both bounds exclusive: at or below lower is noise, at or above upper is corruption."""
    return lower_pct < delta_pct < upper_pct


def same_quote_token(a: PairQuote, b: PairQuote) -> bool:
    return a.quote_token == b.quote_token

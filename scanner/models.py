"""
Data models for the opportunity scanner. Pure data, no behavior.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PairQuote:
    """One trading pair as reported by the price feed."""
    pair_address: str
    chain_id: str
    venue: str
    base_token: str
    quote_token: str
    price: float          # base token price in USD
    liquidity_usd: float
    volume_24h: float = 0.0
    price_native: float | None = None  # base token price in quote token units


@dataclass(frozen=True)
class Opportunity:
    token_in: str
    token_out: str
    venue_a: str
    venue_b: str
    price_a: float
    price_b: float
    price_delta_pct: float  # |a - b| / avg(a, b) * 100
    liquidity_a: float
    liquidity_b: float
    volume_24h_a: float = 0.0
    volume_24h_b: float = 0.0
    chain_id: str = ""
    pair_a: str = ""
    pair_b: str = ""
    native_price_a: float | None = None
    native_price_b: float | None = None
    observed_at: float = field(default_factory=time.time)

    @property
    def min_liquidity(self) -> float:
        return min(self.liquidity_a, self.liquidity_b)

    def to_dict(self) -> dict:
        return {
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "venueA": self.venue_a,
            "venueB": self.venue_b,
            "priceA": self.price_a,
            "priceB": self.price_b,
            "priceDeltaPercent": self.price_delta_pct,
            "liquidityA": self.liquidity_a,
            "liquidityB": self.liquidity_b,
            "volume24hA": self.volume_24h_a,
            "volume24hB": self.volume_24h_b,
            "chainId": self.chain_id,
            "pairA": self.pair_a,
            "pairB": self.pair_b,
            "priceNativeA": self.native_price_a,
            "priceNativeB": self.native_price_b,
            "observedAt": self.observed_at,
        }


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one execution attempt. Produced once, never mutated."""
    succeeded: bool
    opportunity: Opportunity | None = None
    profit_realized: int | None = None      # base units of the borrowed asset
    transaction_reference: str | None = None
    failure_reason: str | None = None
    gas_used: int = 0
    timestamp: float = field(default_factory=time.time)

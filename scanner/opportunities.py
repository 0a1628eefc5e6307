"""
Cross-venue opportunity scanner. Each scan() re-queries the feed for every
monitored token, compares every pair of pairs that share a quote token, keeps
plausible discrepancies and returns the top K by price delta.
"""

from __future__ import annotations

import logging
import time
from functools import partial
from itertools import combinations
from typing import Callable

from client.dexscreener import FeedUnavailable, get_token_pairs
from scanner.filters import (
    has_min_liquidity,
    in_delta_window,
    is_plausible_price,
    price_delta_pct,
    same_quote_token,
    within_price_ratio,
)
from scanner.models import Opportunity, PairQuote

logger = logging.getLogger(__name__)

# (feed_host, token_address, chain_id) -> pairs
PairFetcher = Callable[[str, str, str], list[PairQuote]]

TOP_K = 10


class OpportunityScanner:

    def __init__(
        self,
        feed_host: str,
        chain_id: str,
        tokens: list[str] | tuple[str, ...],
        min_liquidity_usd: float = 1000.0,
        min_delta_pct: float = 2.0,
        max_delta_pct: float = 50.0,
        min_price: float = 1e-6,
        max_price: float = 1e6,
        max_price_ratio: float = 10.0,
        top_k: int = TOP_K,
        fetch_pairs: PairFetcher = get_token_pairs,
    ):
        self.feed_host = feed_host
        self.chain_id = chain_id
        self.tokens = tuple(tokens)
        self.min_liquidity_usd = min_liquidity_usd
        self.min_delta_pct = min_delta_pct
        self.max_delta_pct = max_delta_pct
        self.min_price = min_price
        self.max_price = max_price
        self.max_price_ratio = max_price_ratio
        self.top_k = top_k
        self._fetch_pairs = fetch_pairs

    @classmethod
    def from_config(cls, cfg, fetch_pairs: PairFetcher | None = None) -> "OpportunityScanner":
        if fetch_pairs is None:
            fetch_pairs = partial(get_token_pairs, timeout=cfg.feed_timeout_sec)
        return cls(
            feed_host=cfg.feed_host,
            chain_id=cfg.chain_id,
            tokens=cfg.monitored_tokens,
            min_liquidity_usd=cfg.min_liquidity_usd,
            min_delta_pct=cfg.min_delta_pct,
            max_delta_pct=cfg.max_delta_pct,
            min_price=cfg.min_price,
            max_price=cfg.max_price,
            max_price_ratio=cfg.max_price_ratio,
            top_k=cfg.top_k,
            fetch_pairs=fetch_pairs,
        )

    def compare(self, a: PairQuote, b: PairQuote, observed_at: float | None = None) -> Opportunity | None:
        """Opportunity for two pairs, or None when any filter rejects them."""
        if not same_quote_token(a, b):
            return None
        if not (is_plausible_price(a.price, self.min_price, self.max_price)
                and is_plausible_price(b.price, self.min_price, self.max_price)):
            return None
        if not within_price_ratio(a.price, b.price, self.max_price_ratio):
            return None
        if not (has_min_liquidity(a, self.min_liquidity_usd) and has_min_liquidity(b, self.min_liquidity_usd)):
            return None
        delta = price_delta_pct(a.price, b.price)
        if not in_delta_window(delta, self.min_delta_pct, self.max_delta_pct):
            return None
        return Opportunity(
            token_in=a.base_token,
            token_out=a.quote_token,
            venue_a=a.venue,
            venue_b=b.venue,
            price_a=a.price,
            price_b=b.price,
            price_delta_pct=delta,
            liquidity_a=a.liquidity_usd,
            liquidity_b=b.liquidity_usd,
            volume_24h_a=a.volume_24h,
            volume_24h_b=b.volume_24h,
            chain_id=a.chain_id,
            pair_a=a.pair_address,
            pair_b=b.pair_address,
            native_price_a=a.price_native,
            native_price_b=b.price_native,
            observed_at=observed_at if observed_at is not None else time.time(),
        )

    def scan(self) -> list[Opportunity]:
        """
        Query the feed and return up to top_k opportunities, best first.
        Raises FeedUnavailable only when no monitored token could be fetched.
        """
        opportunities: list[Opportunity] = []
        failures = 0
        for token in self.tokens:
            try:
                pairs = self._fetch_pairs(self.feed_host, token, self.chain_id)
            except FeedUnavailable as e:
                failures += 1
                logger.warning("Feed fetch failed for %s: %s", token, e)
                continue

            now = time.time()
            for a, b in combinations(pairs, 2):
                opp = self.compare(a, b, observed_at=now)
                if opp is not None:
                    opportunities.append(opp)

        if self.tokens and failures == len(self.tokens):
            raise FeedUnavailable(f"all {failures} monitored token fetches failed")

        opportunities.sort(key=lambda o: o.price_delta_pct, reverse=True)
        logger.debug("Scan found %d opportunities across %d tokens", len(opportunities), len(self.tokens))
        return opportunities[: self.top_k]

"""
DEX price-feed client. Pure REST, no SDK dependency.
"""

from __future__ import annotations

import logging

import httpx

from scanner.models import PairQuote

logger = logging.getLogger(__name__)

_TIMEOUT = 10.0


class FeedUnavailable(Exception):
    """Raised when the price feed cannot be reached or answers with an error status."""
    pass


def _get(base_url: str, path: str, timeout: float = _TIMEOUT) -> object:
    """GET a feed path. Raises FeedUnavailable on transport errors or non-2xx."""
    url = f"{base_url.rstrip('/')}{path}"
    try:
        resp = httpx.get(url, timeout=timeout)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise FeedUnavailable(f"{url}: {e}") from e
    try:
        return resp.json()
    except ValueError:
        logger.warning("Feed returned non-JSON body for %s", url)
        return None


def _float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_pair(raw: object) -> PairQuote | None:
    """Build a PairQuote from one feed entry. Returns None when anything required is missing."""
    if not isinstance(raw, dict):
        return None
    base = raw.get("baseToken")
    quote = raw.get("quoteToken")
    if not isinstance(base, dict) or not isinstance(quote, dict):
        return None
    base_addr = base.get("address")
    quote_addr = quote.get("address")
    if not isinstance(base_addr, str) or not isinstance(quote_addr, str):
        return None

    price = _float(raw.get("priceUsd"))
    if price is None:
        return None

    liquidity = raw.get("liquidity")
    liquidity_usd = _float(liquidity.get("usd")) if isinstance(liquidity, dict) else None
    if liquidity_usd is None:
        return None

    volume = raw.get("volume")
    volume_24h = _float(volume.get("h24")) if isinstance(volume, dict) else None

    return PairQuote(
        pair_address=str(raw.get("pairAddress", "")).lower(),
        chain_id=str(raw.get("chainId", "")),
        venue=str(raw.get("dexId", "")),
        base_token=base_addr.lower(),
        quote_token=quote_addr.lower(),
        price=price,
        liquidity_usd=liquidity_usd,
        volume_24h=volume_24h or 0.0,
        price_native=_float(raw.get("priceNative")),
    )


def get_token_pairs(
    feed_host: str,
    token_address: str,
    chain_id: str,
    timeout: float = _TIMEOUT,
) -> list[PairQuote]:
    """
    Fetch every pair the feed knows for a token, restricted to one network.
    Malformed entries are skipped; a malformed body yields no pairs.
    """
    data = _get(feed_host, f"/tokens/{token_address}", timeout=timeout)
    raw_pairs = data.get("pairs") if isinstance(data, dict) else None
    if not isinstance(raw_pairs, list):
        return []

    pairs: list[PairQuote] = []
    skipped = 0
    for raw in raw_pairs:
        if not isinstance(raw, dict) or raw.get("chainId") != chain_id:
            continue
        pair = parse_pair(raw)
        if pair is None:
            skipped += 1
            continue
        pairs.append(pair)
    if skipped:
        logger.debug("Skipped %d malformed pairs for %s", skipped, token_address)
    return pairs

"""
Gas price oracle. Queries the network RPC (eth_gasPrice) and caches the
result to avoid hammering the endpoint.
"""

from __future__ import annotations

import logging
import time

import httpx

logger = logging.getLogger(__name__)

_TIMEOUT = 5.0
_WEI_PER_GWEI = 1_000_000_000


class GasOracle:
    """
    Cached gas price oracle with a fixed fallback when the RPC is unreachable.
    """

    def __init__(
        self,
        rpc_url: str = "https://mainnet.base.org",
        cache_sec: float = 10.0,
        default_gas_gwei: float = 1.0,
        allow_network: bool = False,
    ):
        self._rpc_url = rpc_url
        self._cache_sec = cache_sec
        self._default_wei = int(default_gas_gwei * _WEI_PER_GWEI)
        self._allow_network = allow_network

        self._cached_wei: int | None = None
        self._gas_ts: float = 0.0

    def get_gas_price_wei(self) -> int:
        """Return current gas price in wei. Uses cache if fresh."""
        now = time.time()
        if self._cached_wei is not None and (now - self._gas_ts) < self._cache_sec:
            return self._cached_wei
        if not self._allow_network:
            return self._default_wei

        try:
            resp = httpx.post(
                self._rpc_url,
                json={"jsonrpc": "2.0", "method": "eth_gasPrice", "params": [], "id": 1},
                timeout=_TIMEOUT,
            )
            resp.raise_for_status()
            wei = int(resp.json()["result"], 16)
            self._cached_wei = wei
            self._gas_ts = now
            logger.debug("Gas price: %.3f gwei", wei / _WEI_PER_GWEI)
            return wei
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Gas price fetch failed, using default %.3f gwei: %s",
                self._default_wei / _WEI_PER_GWEI, e,
            )
            return self._default_wei

    def get_gas_price_gwei(self) -> float:
        return self.get_gas_price_wei() / _WEI_PER_GWEI

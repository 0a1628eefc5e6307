"""
Local network: one ledger with a flash lender and two venues, plus engine
deployment. Stands in for the chain the engine runs on.
"""

from __future__ import annotations

import logging

from eth_account import Account

from chain.engine import ArbitrageEngine
from chain.lending import DEFAULT_PREMIUM_BPS, FlashLender
from chain.ledger import DEFAULT_BASE_GAS_PRICE_WEI, Ledger, normalize_address
from chain.settings import Settings
from chain.venues import AlternateAmmVenue, PrimaryAmmVenue

logger = logging.getLogger(__name__)


def wallet_address(private_key: str) -> str:
    """Account address controlled by a signing key, lowercased like every ledger address."""
    if not private_key or not private_key.lower().removeprefix("0x"):
        raise ValueError("private key is empty")
    return normalize_address(Account.from_key(private_key).address)


def ephemeral_wallet_address() -> str:
    """Address of a freshly generated account whose key is discarded."""
    return normalize_address(Account.create().address)


class LocalNetwork:

    def __init__(
        self,
        name: str = "local",
        base_gas_price_wei: int = DEFAULT_BASE_GAS_PRICE_WEI,
        premium_bps: int = DEFAULT_PREMIUM_BPS,
    ):
        self.name = name
        self.ledger = Ledger(base_gas_price_wei=base_gas_price_wei)
        self.lender = FlashLender(self.ledger, self.ledger.new_address("lender"), premium_bps=premium_bps)
        self.primary_venue = PrimaryAmmVenue(self.ledger, self.ledger.new_address("primary_amm"))
        self.alternate_venue = AlternateAmmVenue(self.ledger, self.ledger.new_address("alternate_amm"))
        self._engines: dict[str, ArbitrageEngine] = {}

    def gas_price_wei(self) -> int:
        return self.ledger.base_gas_price_wei

    def set_gas_price_wei(self, price: int) -> None:
        self.ledger.base_gas_price_wei = price

    def deploy_engine(self, owner: str, settings: Settings | None = None) -> str:
        address = self.ledger.new_address(f"engine:{owner}")
        engine = ArbitrageEngine(
            self.ledger,
            address,
            owner=owner,
            lender=self.lender,
            primary_venue=self.primary_venue,
            alternate_venue=self.alternate_venue,
            settings=settings,
        )
        self._engines[engine.address] = engine
        logger.info("ArbitrageEngine deployed to %s (owner %s)", engine.address, engine.owner)
        return engine.address

    def engine_at(self, address: str) -> ArbitrageEngine:
        engine = self._engines.get(normalize_address(address))
        if engine is None:
            raise KeyError(f"No engine deployed at {address}")
        return engine

    def seed_pair(
        self,
        token_in: str,
        token_out: str,
        pool: int,
        reserve_in: int,
        reserve_out: int,
        alternate: bool = False,
    ) -> None:
        """Reset one pool on the primary (or alternate) venue to the given depth."""
        venue = self.alternate_venue if alternate else self.primary_venue
        venue.set_reserves(token_in, token_out, pool, reserve_in, reserve_out)
        logger.debug(
            "Seeded %s pool %s/%s/%s: %d / %d",
            venue.venue_id, token_in, token_out, pool, reserve_in, reserve_out,
        )

    def ensure_lender_funds(self, asset: str, amount: int) -> None:
        """Top the lender up so it can lend at least `amount` of `asset`."""
        shortfall = amount - self.lender.available_liquidity(asset)
        if shortfall > 0:
            self.lender.deposit(asset, shortfall)

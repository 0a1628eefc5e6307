"""
Venue adapters. The engine only talks to the VenueAdapter protocol; each
variant interprets the `fee` argument its own way (fee tier for the primary
AMM, pool selector for the alternate AMM).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol, Union, runtime_checkable

from chain.errors import InsufficientLiquidity, InvalidAmount, PoolNotFound, SlippageExceeded
from chain.ledger import GAS_SWAP, Ledger, normalize_address

logger = logging.getLogger(__name__)

FEE_DENOMINATOR = 1_000_000  # fees in hundredths of a basis point


@dataclass(frozen=True)
class Quote:
    amount_out: int

    @property
    def available(self) -> bool:
        return True


@dataclass(frozen=True)
class QuoteUnavailable:
    """No answer from the venue. Distinct from a genuine zero-output quote."""
    reason: str

    @property
    def amount_out(self) -> int:
        return 0

    @property
    def available(self) -> bool:
        return False


QuoteResult = Union[Quote, QuoteUnavailable]


@runtime_checkable
class VenueAdapter(Protocol):
    """Swap/quote surface shared by every venue."""

    @property
    def address(self) -> str:
        ...

    @property
    def venue_id(self) -> str:
        ...

    def quote(self, token_in: str, token_out: str, amount_in: int, fee: int) -> QuoteResult:
        """Expected output for amount_in. Never raises for a missing pool."""
        ...

    def swap(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_amount_out: int,
        fee: int,
        recipient: str,
    ) -> int:
        """Pull amount_in from msg_sender (needs approval), send output to recipient."""
        ...


class ConstantProductVenue(ABC):
    """
    x*y=k pools keyed by (token pair, pool key). Reserves live in ledger
    storage; the venue's token balances back them.
    """

    venue_id = "amm"

    def __init__(self, ledger: Ledger, address: str):
        self._ledger = ledger
        self._address = normalize_address(address)

    @property
    def address(self) -> str:
        return self._address

    @abstractmethod
    def _fee_ppm(self, fee: int) -> int | None:
        """Map the fee argument to a pool fee in ppm. None = no such pool kind."""

    @staticmethod
    def _pool_key(token_a: str, token_b: str, fee: int) -> tuple[str, tuple[str, str]]:
        a, b = sorted((normalize_address(token_a), normalize_address(token_b)))
        return f"pool:{a}:{b}:{fee}", (a, b)

    def reserves(self, token_in: str, token_out: str, fee: int) -> tuple[int, int] | None:
        """(reserve_in, reserve_out) or None when the pool does not exist."""
        key, (a, _) = self._pool_key(token_in, token_out, fee)
        pool = self._ledger.sload(self._address, key)
        if pool is None:
            return None
        r0, r1 = pool
        return (r0, r1) if normalize_address(token_in) == a else (r1, r0)

    def _store_reserves(self, token_in: str, token_out: str, fee: int, reserve_in: int, reserve_out: int) -> None:
        key, (a, _) = self._pool_key(token_in, token_out, fee)
        pool = (reserve_in, reserve_out) if normalize_address(token_in) == a else (reserve_out, reserve_in)
        self._ledger.sstore(self._address, key, pool)

    def add_liquidity(self, token_a: str, token_b: str, fee: int, amount_a: int, amount_b: int) -> None:
        """Seed or deepen a pool. Setup only: tokens are minted to the venue."""
        if self._fee_ppm(fee) is None:
            raise PoolNotFound(f"{self.venue_id} has no pool kind {fee}")
        if amount_a <= 0 or amount_b <= 0:
            raise InvalidAmount("liquidity amounts must be positive")
        current = self.reserves(token_a, token_b, fee) or (0, 0)
        self._ledger.mint(token_a, self._address, amount_a)
        self._ledger.mint(token_b, self._address, amount_b)
        self._store_reserves(token_a, token_b, fee, current[0] + amount_a, current[1] + amount_b)

    def set_reserves(self, token_a: str, token_b: str, fee: int, reserve_a: int, reserve_b: int) -> None:
        """Reset a pool to the given depth. Setup only: any shortfall in backing tokens is minted."""
        if self._fee_ppm(fee) is None:
            raise PoolNotFound(f"{self.venue_id} has no pool kind {fee}")
        if reserve_a <= 0 or reserve_b <= 0:
            raise InvalidAmount("reserves must be positive")
        current = self.reserves(token_a, token_b, fee) or (0, 0)
        if reserve_a > current[0]:
            self._ledger.mint(token_a, self._address, reserve_a - current[0])
        if reserve_b > current[1]:
            self._ledger.mint(token_b, self._address, reserve_b - current[1])
        self._store_reserves(token_a, token_b, fee, reserve_a, reserve_b)

    def _amount_out(self, reserve_in: int, reserve_out: int, amount_in: int, fee_ppm: int) -> int:
        in_after_fee = amount_in * (FEE_DENOMINATOR - fee_ppm)
        return (reserve_out * in_after_fee) // (reserve_in * FEE_DENOMINATOR + in_after_fee)

    def quote(self, token_in: str, token_out: str, amount_in: int, fee: int) -> QuoteResult:
        fee_ppm = self._fee_ppm(fee)
        if fee_ppm is None:
            return QuoteUnavailable(f"{self.venue_id}: unsupported pool kind {fee}")
        if amount_in <= 0:
            return QuoteUnavailable(f"{self.venue_id}: non-positive amount {amount_in}")
        reserves = self.reserves(token_in, token_out, fee)
        if reserves is None:
            return QuoteUnavailable(f"{self.venue_id}: no pool {token_in}/{token_out}/{fee}")
        reserve_in, reserve_out = reserves
        if reserve_in <= 0 or reserve_out <= 0:
            return QuoteUnavailable(f"{self.venue_id}: empty pool {token_in}/{token_out}/{fee}")
        return Quote(self._amount_out(reserve_in, reserve_out, amount_in, fee_ppm))

    def swap(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_amount_out: int,
        fee: int,
        recipient: str,
    ) -> int:
        payer = self._ledger.msg_sender
        self._ledger.charge(GAS_SWAP)
        if amount_in <= 0:
            raise InvalidAmount(f"swap amount must be positive, got {amount_in}")
        fee_ppm = self._fee_ppm(fee)
        reserves = self.reserves(token_in, token_out, fee) if fee_ppm is not None else None
        if reserves is None:
            raise PoolNotFound(f"{self.venue_id}: no pool {token_in}/{token_out}/{fee}")
        reserve_in, reserve_out = reserves
        amount_out = self._amount_out(reserve_in, reserve_out, amount_in, fee_ppm)
        if amount_out <= 0:
            raise InsufficientLiquidity(f"{self.venue_id}: zero output for {amount_in}")
        if amount_out < min_amount_out:
            raise SlippageExceeded(f"{self.venue_id}: out {amount_out} < min {min_amount_out}")

        self._ledger.transfer_from(token_in, self._address, payer, self._address, amount_in)
        self._ledger.transfer(token_out, self._address, recipient, amount_out)
        self._store_reserves(token_in, token_out, fee, reserve_in + amount_in, reserve_out - amount_out)
        self._ledger.emit(
            self._address, "Swap",
            token_in=normalize_address(token_in), token_out=normalize_address(token_out),
            amount_in=amount_in, amount_out=amount_out, fee=fee,
        )
        logger.debug("%s swap %d %s -> %d %s", self.venue_id, amount_in, token_in, amount_out, token_out)
        return amount_out


class PrimaryAmmVenue(ConstantProductVenue):
    """Fee-tiered AMM: `fee` is the pool's fee in hundredths of a basis point."""

    venue_id = "primary_amm"
    FEE_TIERS = frozenset({100, 500, 3000, 10000})

    def _fee_ppm(self, fee: int) -> int | None:
        return fee if fee in self.FEE_TIERS else None


class AlternateAmmVenue(ConstantProductVenue):
    """Volatile/stable AMM: `fee` selects the pool (0 = volatile, 1 = stable)."""

    venue_id = "alternate_amm"
    VOLATILE = 0
    STABLE = 1
    _POOL_FEES = {VOLATILE: 3000, STABLE: 500}

    def _fee_ppm(self, fee: int) -> int | None:
        return self._POOL_FEES.get(fee)

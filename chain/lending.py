"""
Flash-loan facility. Lends, calls the receiver back synchronously, then pulls
principal + premium. Runs inside the borrower's transaction, so a failed
repayment (or anything the receiver does wrong) reverts the loan too.

The initiator is whoever called flash_loan_simple (msg_sender); the receiver
sees the lender itself as msg_sender during the callback.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from chain.errors import CallbackFailed, InsufficientLiquidity, InvalidAmount
from chain.ledger import GAS_FLASH_LOAN, Ledger, normalize_address

logger = logging.getLogger(__name__)

DEFAULT_PREMIUM_BPS = 5  # 0.05%


@runtime_checkable
class FlashLoanReceiver(Protocol):
    def on_loan_received(
        self,
        asset: str,
        amount: int,
        premium: int,
        initiator: str,
        params: bytes,
    ) -> bool:
        ...


class FlashLender:

    def __init__(self, ledger: Ledger, address: str, premium_bps: int = DEFAULT_PREMIUM_BPS):
        self._ledger = ledger
        self.address = normalize_address(address)
        self.premium_bps = premium_bps

    def premium_for(self, amount: int) -> int:
        """Premium rounded half-up, as lending pools compute percentages."""
        return (amount * self.premium_bps + 5_000) // 10_000

    def available_liquidity(self, asset: str) -> int:
        return self._ledger.balance_of(asset, self.address)

    def deposit(self, asset: str, amount: int) -> None:
        """Fund the facility. Setup only."""
        self._ledger.mint(asset, self.address, amount)

    def flash_loan_simple(
        self,
        receiver: str,
        asset: str,
        amount: int,
        params: bytes,
    ) -> None:
        ledger = self._ledger
        initiator = ledger.msg_sender
        ledger.charge(GAS_FLASH_LOAN)
        if amount <= 0:
            raise InvalidAmount(f"loan amount must be positive, got {amount}")
        if self.available_liquidity(asset) < amount:
            raise InsufficientLiquidity(f"lender holds {self.available_liquidity(asset)} of {asset}, asked {amount}")

        premium = self.premium_for(amount)
        target: FlashLoanReceiver = ledger.contract_at(receiver)

        ledger.transfer(asset, self.address, receiver, amount)
        with ledger.call_from(self.address):
            ok = target.on_loan_received(
                asset=normalize_address(asset),
                amount=amount,
                premium=premium,
                initiator=initiator,
                params=params,
            )
        if not ok:
            raise CallbackFailed(f"receiver {receiver} rejected the loan")
        ledger.transfer_from(asset, self.address, receiver, self.address, amount + premium)
        ledger.emit(
            self.address, "FlashLoan",
            receiver=normalize_address(receiver), initiator=initiator,
            asset=normalize_address(asset), amount=amount, premium=premium,
        )
        logger.debug("Flash loan repaid: %d + %d of %s", amount, premium, asset)

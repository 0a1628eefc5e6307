"""
Flash-loan arbitrage engine.

request_execution() borrows `amount` of `asset` from the lender; the lender
calls back on_loan_received(), which swaps asset -> intermediate on the primary
venue, swaps back on the primary or alternate venue, checks that the round
trip made money and can repay, and approves the lender to pull principal +
premium. The whole sequence runs inside the owner's ledger transaction:
any revert anywhere undoes the swaps, the approvals and the loan itself.

Every guard checks the ledger's msg_sender. Outside a transaction the entry
points fail with NoTransaction before touching storage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chain.codec import decode_params
from chain.errors import (
    AccessDenied,
    GasPriceExceeded,
    InsufficientRepayment,
    InvalidAmount,
    InvalidCaller,
    InvalidInitiator,
    InvalidParams,
    NothingToWithdraw,
    ReentrancyBlocked,
    UnprofitableTrade,
)
from chain.lending import FlashLender
from chain.ledger import NATIVE_TOKEN, Ledger, normalize_address
from chain.settings import MAX_BPS, Settings, SettingsStore
from chain.venues import QuoteResult, QuoteUnavailable, VenueAdapter

logger = logging.getLogger(__name__)

_ENTERED_KEY = "entered"


@dataclass(frozen=True)
class OpportunityQuote:
    profitable: bool
    expected_profit: int
    recommended_amount: int
    leg1: QuoteResult
    leg2: QuoteResult

    @property
    def complete(self) -> bool:
        """False when either leg had no answer (its zero is not a real quote)."""
        return self.leg1.available and self.leg2.available


class ArbitrageEngine:

    def __init__(
        self,
        ledger: Ledger,
        address: str,
        owner: str,
        lender: FlashLender,
        primary_venue: VenueAdapter,
        alternate_venue: VenueAdapter,
        settings: Settings | None = None,
    ):
        self._ledger = ledger
        self.address = normalize_address(address)
        self.owner = normalize_address(owner)
        self._lender = lender
        self._primary = primary_venue
        self._alternate = alternate_venue
        self.settings_store = SettingsStore(ledger, self.address, self.owner, settings)
        ledger.register_contract(self.address, self)

    # ── Guards ──

    def _only_owner(self) -> None:
        sender = self._ledger.msg_sender
        if sender != self.owner:
            raise AccessDenied(f"{sender} is not the owner")

    def _enter(self) -> None:
        # Only reachable inside a transaction: a revert restores the pre-transaction value.
        if self._ledger.sload(self.address, _ENTERED_KEY, False):
            raise ReentrancyBlocked("on_loan_received already in progress")
        self._ledger.sstore(self.address, _ENTERED_KEY, True)

    def _exit(self) -> None:
        self._ledger.sstore(self.address, _ENTERED_KEY, False)

    # ── Execution ──

    def request_execution(self, asset: str, amount: int, params: bytes) -> None:
        self._only_owner()
        settings = self.settings_store.get()
        gas_price = self._ledger.tx_gas_price
        if gas_price > settings.max_gas_price_wei:
            raise GasPriceExceeded(f"gas price {gas_price} > cap {settings.max_gas_price_wei}")
        if amount <= 0:
            raise InvalidAmount(f"loan amount must be positive, got {amount}")
        logger.debug("Requesting flash loan of %d %s", amount, asset)
        with self._ledger.call_from(self.address):
            self._lender.flash_loan_simple(
                receiver=self.address,
                asset=asset,
                amount=amount,
                params=params,
            )

    def on_loan_received(
        self,
        asset: str,
        amount: int,
        premium: int,
        initiator: str,
        params: bytes,
    ) -> bool:
        sender = self._ledger.msg_sender
        self._enter()
        if sender != self._lender.address:
            raise InvalidCaller(f"{sender} is not the lending facility")
        if normalize_address(initiator) != self.address:
            raise InvalidInitiator(f"loan initiated by {initiator}, not this engine")

        ledger = self._ledger
        asset = normalize_address(asset)
        p = decode_params(params)
        if p.amount_in <= 0:
            raise InvalidParams("amount_in must be positive")
        if p.token_in != asset:
            raise InvalidParams(f"params token_in {p.token_in} does not match loan asset {asset}")
        slippage_bps = self.settings_store.get().max_slippage_bps

        pre_balance = ledger.balance_of(asset, self.address)

        intermediate = self._swap(self._primary, asset, p.token_out, p.amount_in, p.fee_leg1, slippage_bps)
        second = self._alternate if p.use_alternate_venue else self._primary
        self._swap(second, p.token_out, asset, intermediate, p.fee_leg2, slippage_bps)

        post_balance = ledger.balance_of(asset, self.address)
        profit = max(0, post_balance - pre_balance)
        if profit <= 0:
            raise UnprofitableTrade(f"round trip returned {post_balance - pre_balance}")
        owed = amount + premium
        if post_balance < owed:
            raise InsufficientRepayment(f"holding {post_balance}, owe {owed}")

        ledger.approve(asset, self.address, self._lender.address, owed)
        ledger.emit(
            self.address, "ArbitrageExecuted",
            asset=asset, amount=amount, profit=profit, gas_used=ledger.gas_used(),
        )
        logger.info("Arbitrage executed: asset=%s amount=%d profit=%d", asset, amount, profit)
        self._exit()
        return True

    def _swap(
        self,
        venue: VenueAdapter,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee: int,
        slippage_bps: int,
    ) -> int:
        expected = self._safe_quote(venue, token_in, token_out, amount_in, fee)
        min_out = expected.amount_out * (MAX_BPS - slippage_bps) // MAX_BPS
        self._ledger.approve(token_in, self.address, venue.address, amount_in)
        with self._ledger.call_from(self.address):
            return venue.swap(token_in, token_out, amount_in, min_out, fee, self.address)

    # ── Quotes ──

    @staticmethod
    def _safe_quote(venue: VenueAdapter, token_in: str, token_out: str, amount_in: int, fee: int) -> QuoteResult:
        try:
            return venue.quote(token_in, token_out, amount_in, fee)
        except Exception as e:
            logger.debug("Quote failed on %s: %s", getattr(venue, "venue_id", venue), e)
            return QuoteUnavailable(str(e) or type(e).__name__)

    def quote_opportunity(
        self,
        token_a: str,
        token_b: str,
        fee_leg1: int,
        fee_leg2: int,
        test_amount: int,
    ) -> OpportunityQuote:
        """Round-trip A -> B -> A on the primary venue. Unrestricted caller."""
        if test_amount <= 0:
            raise InvalidAmount(f"test amount must be positive, got {test_amount}")
        leg1 = self._safe_quote(self._primary, token_a, token_b, test_amount, fee_leg1)
        leg2 = self._safe_quote(self._primary, token_b, token_a, leg1.amount_out, fee_leg2)
        quote_back = leg2.amount_out

        profit_bps = (quote_back - test_amount) * MAX_BPS // test_amount
        profitable = profit_bps >= self.settings_store.get().min_profit_bps
        return OpportunityQuote(
            profitable=profitable,
            expected_profit=max(0, quote_back - test_amount),
            recommended_amount=test_amount if profitable else 0,
            leg1=leg1,
            leg2=leg2,
        )

    # ── Owner operations ──

    @property
    def settings(self) -> Settings:
        return self.settings_store.get()

    def update_settings(
        self,
        min_profit_bps: int,
        max_gas_price_wei: int,
        max_slippage_bps: int,
    ) -> None:
        new = Settings(
            min_profit_bps=min_profit_bps,
            max_gas_price_wei=max_gas_price_wei,
            max_slippage_bps=max_slippage_bps,
        )
        self.settings_store.update(new)
        self._ledger.emit(
            self.address, "SettingsUpdated",
            min_profit_bps=min_profit_bps, max_gas_price_wei=max_gas_price_wei,
            max_slippage_bps=max_slippage_bps,
        )

    def withdraw_profits(self, token: str) -> int:
        self._only_owner()
        balance = self._ledger.balance_of(token, self.address)
        if balance == 0:
            raise NothingToWithdraw(f"no {token} held")
        self._ledger.transfer(token, self.address, self.owner, balance)
        self._ledger.emit(self.address, "Withdrawal", token=normalize_address(token), amount=balance)
        return balance

    def withdraw_reserve(self) -> int:
        self._only_owner()
        balance = self._ledger.native_balance_of(self.address)
        if balance == 0:
            raise NothingToWithdraw("no native reserve held")
        self._ledger.send_native(self.address, self.owner, balance)
        self._ledger.emit(self.address, "Withdrawal", token=NATIVE_TOKEN, amount=balance)
        return balance

"""
Tests for chain/engine.py -- flash-loan arbitrage executed atomically.

The fixture network prices WETH at 2000 USDC on the primary venue and 2200 on
the alternate venue's volatile pool, so USDC -> WETH (primary) -> USDC
(alternate) is profitable and USDC -> WETH -> USDC on the primary pool alone
only loses fees.
"""

from unittest.mock import MagicMock

import pytest

from chain.codec import ArbitrageParams, encode_params
from chain.engine import ArbitrageEngine
from chain.errors import AccessDenied, InvalidAmount, InvalidSettings, NoTransaction, NothingToWithdraw
from chain.ledger import NATIVE_TOKEN, Ledger
from chain.lending import FlashLender
from chain.network import LocalNetwork
from chain.venues import AlternateAmmVenue, Quote, QuoteUnavailable

WETH = "0x4200000000000000000000000000000000000006"
USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
OWNER = "0x00000000000000000000000000000000000000a1"
OTHER = "0x00000000000000000000000000000000000000b2"
GWEI = 1_000_000_000
LOAN = 1_000_000
LENDER_FUNDS = 100_000_000

PROFITABLE = ArbitrageParams(USDC, WETH, LOAN, 3000, AlternateAmmVenue.VOLATILE, True)
ROUND_TRIP_PRIMARY = ArbitrageParams(USDC, WETH, LOAN, 3000, 3000, False)


def _seed(network: LocalNetwork) -> None:
    network.primary_venue.add_liquidity(USDC, WETH, 3000, 2_000_000_000, 1_000_000)
    network.alternate_venue.add_liquidity(WETH, USDC, AlternateAmmVenue.VOLATILE, 1_000_000, 2_200_000_000)
    network.lender.deposit(USDC, LENDER_FUNDS)


@pytest.fixture
def network() -> LocalNetwork:
    net = LocalNetwork()
    _seed(net)
    return net


@pytest.fixture
def engine(network) -> ArbitrageEngine:
    return network.engine_at(network.deploy_engine(OWNER))


def _execute(network, engine, params=PROFITABLE, sender=OWNER, amount=LOAN, gas_price=GWEI):
    return network.ledger.send_transaction(
        sender, engine.request_execution, USDC, amount, encode_params(params),
        gas_price_wei=gas_price,
    )


class TestExecution:
    def test_profitable_round_trip(self, network, engine):
        receipt = _execute(network, engine)

        assert receipt.status is True, receipt.revert_reason
        executed = receipt.find_log("ArbitrageExecuted")
        profit = executed.fields["profit"]
        premium = network.lender.premium_for(LOAN)
        # Engine keeps what is left after repaying principal + premium
        assert network.ledger.balance_of(USDC, engine.address) == profit - premium
        assert network.lender.available_liquidity(USDC) == LENDER_FUNDS + premium
        assert executed.fields["asset"] == USDC
        assert executed.fields["amount"] == LOAN
        assert 0 < executed.fields["gas_used"] <= receipt.gas_used
        assert receipt.find_log("FlashLoan") is not None
        assert len([log for log in receipt.logs if log.name == "Swap"]) == 2

    def test_unprofitable_trade_reverts_everything(self, network, engine):
        reserves_before = network.primary_venue.reserves(USDC, WETH, 3000)

        receipt = _execute(network, engine, params=ROUND_TRIP_PRIMARY)

        assert receipt.status is False
        assert receipt.revert_reason == "UnprofitableTrade"
        assert network.ledger.balance_of(USDC, engine.address) == 0
        assert network.lender.available_liquidity(USDC) == LENDER_FUNDS
        assert network.primary_venue.reserves(USDC, WETH, 3000) == reserves_before
        assert network.ledger.logs("Swap") == []

    def test_premium_larger_than_profit(self):
        net = LocalNetwork(premium_bps=5_000)
        _seed(net)
        engine = net.engine_at(net.deploy_engine(OWNER))

        receipt = _execute(net, engine)

        assert receipt.revert_reason == "InsufficientRepayment"
        assert net.lender.available_liquidity(USDC) == LENDER_FUNDS

    def test_params_must_match_loan_asset(self, network, engine):
        params = ArbitrageParams(WETH, USDC, LOAN, 3000, 3000, False)
        receipt = _execute(network, engine, params=params)
        assert receipt.revert_reason == "InvalidParams"

    def test_only_owner_may_request(self, network, engine):
        receipt = _execute(network, engine, sender=OTHER)
        assert receipt.revert_reason == AccessDenied.code

    def test_zero_amount(self, network, engine):
        receipt = _execute(network, engine, amount=0)
        assert receipt.revert_reason == InvalidAmount.code

    def test_loan_exceeding_lender_funds(self, network, engine):
        receipt = _execute(network, engine, amount=LENDER_FUNDS + 1)
        assert receipt.revert_reason == "InsufficientLiquidity"

    def test_gas_price_cap(self, network, engine):
        receipt = _execute(network, engine, gas_price=60 * GWEI)
        assert receipt.revert_reason == "GasPriceExceeded"

        network.ledger.send_transaction(OWNER, engine.update_settings, 50, 100 * GWEI, 100)
        receipt = _execute(network, engine, gas_price=60 * GWEI)
        assert receipt.status is True

    def test_reentrancy_flag_cleared_after_success_and_revert(self, network, engine):
        _execute(network, engine)
        assert network.ledger.sload(engine.address, "entered") is False
        _execute(network, engine, params=ROUND_TRIP_PRIMARY)
        assert network.ledger.sload(engine.address, "entered") is False
        assert _execute(network, engine).status is True


class TestCallbackGuards:
    def test_direct_callback_from_stranger(self, network, engine):
        receipt = network.ledger.send_transaction(
            OTHER, engine.on_loan_received,
            USDC, LOAN, 0, engine.address, encode_params(PROFITABLE),
        )
        assert receipt.revert_reason == "InvalidCaller"

    def test_stranger_naming_engine_as_initiator(self, network, engine):
        """A forged callback that claims the engine started the loan leaves nothing behind."""
        network.ledger.mint(USDC, engine.address, LOAN)

        receipt = network.ledger.send_transaction(
            OTHER, engine.on_loan_received,
            USDC, LOAN, 0, engine.address, encode_params(PROFITABLE),
        )

        assert receipt.revert_reason == "InvalidCaller"
        assert network.ledger.allowance(USDC, engine.address, network.lender.address) == 0
        assert network.ledger.logs("ArbitrageExecuted") == []
        assert network.ledger.balance_of(USDC, engine.address) == LOAN

    def test_owner_cannot_call_callback_directly(self, network, engine):
        receipt = network.ledger.send_transaction(
            OWNER, engine.on_loan_received,
            USDC, LOAN, 0, engine.address, encode_params(PROFITABLE),
        )
        assert receipt.revert_reason == "InvalidCaller"

    def test_lender_callback_for_foreign_loan(self, network, engine):
        """Someone else borrows and names the engine as receiver."""
        receipt = network.ledger.send_transaction(
            OTHER, network.lender.flash_loan_simple,
            engine.address, USDC, LOAN, encode_params(PROFITABLE),
        )
        assert receipt.revert_reason == "InvalidInitiator"
        assert network.lender.available_liquidity(USDC) == LENDER_FUNDS

    def test_callback_outside_transaction_leaves_flag_clear(self, network, engine):
        with pytest.raises(NoTransaction):
            engine.on_loan_received(USDC, LOAN, 0, engine.address, encode_params(PROFITABLE))

        assert not network.ledger.sload(engine.address, "entered")
        assert _execute(network, engine).status is True

    def test_owner_entry_points_need_a_transaction(self, network, engine):
        with pytest.raises(NoTransaction):
            engine.request_execution(USDC, LOAN, encode_params(PROFITABLE))
        with pytest.raises(NoTransaction):
            engine.update_settings(0, 10**30, 10_000)
        assert engine.settings.min_profit_bps == 50

    def test_reentrant_callback_blocked(self):
        ledger = Ledger()
        lender = FlashLender(ledger, ledger.new_address("lender"))
        lender.deposit(USDC, LENDER_FUNDS)

        class ReenteringVenue:
            venue_id = "reentering"

            def __init__(self):
                self.address = ledger.new_address("venue")
                self.engine = None

            def quote(self, token_in, token_out, amount_in, fee):
                return Quote(amount_in)

            def swap(self, token_in, token_out, amount_in, min_amount_out, fee, recipient):
                self.engine.on_loan_received(token_in, amount_in, 0, self.engine.address, b"")
                return amount_in

        venue = ReenteringVenue()
        engine = ArbitrageEngine(ledger, ledger.new_address("engine"), OWNER, lender, venue, venue)
        venue.engine = engine

        receipt = ledger.send_transaction(
            OWNER, engine.request_execution, USDC, LOAN, encode_params(PROFITABLE),
        )

        assert receipt.revert_reason == "ReentrancyBlocked"
        assert not ledger.sload(engine.address, "entered")
        assert lender.available_liquidity(USDC) == LENDER_FUNDS


class TestQuoteOpportunity:
    def _engine(self, venue) -> ArbitrageEngine:
        ledger = Ledger()
        lender = FlashLender(ledger, ledger.new_address("lender"))
        return ArbitrageEngine(ledger, ledger.new_address("engine"), OWNER, lender, venue, venue)

    def test_profitable_round_trip(self):
        venue = MagicMock()
        venue.quote.side_effect = [Quote(1050), Quote(1060)]

        result = self._engine(venue).quote_opportunity(WETH, USDC, 3000, 500, 1000)

        assert result.profitable is True
        assert result.expected_profit == 60
        assert result.recommended_amount == 1000
        assert result.complete is True
        venue.quote.assert_any_call(USDC, WETH, 1050, 500)

    def test_below_min_profit(self):
        venue = MagicMock()
        venue.quote.side_effect = [Quote(1000), Quote(1004)]  # 40 bps < 50 bps

        result = self._engine(venue).quote_opportunity(WETH, USDC, 3000, 500, 1000)

        assert result.profitable is False
        assert result.expected_profit == 4
        assert result.recommended_amount == 0

    def test_losing_round_trip_reports_zero_profit(self):
        venue = MagicMock()
        venue.quote.side_effect = [Quote(900), Quote(950)]
        result = self._engine(venue).quote_opportunity(WETH, USDC, 3000, 500, 1000)
        assert result.expected_profit == 0
        assert result.profitable is False

    def test_failed_venue_is_tagged_not_zero(self):
        venue = MagicMock()
        venue.quote.side_effect = RuntimeError("pool missing")

        result = self._engine(venue).quote_opportunity(WETH, USDC, 3000, 500, 1000)

        assert result.profitable is False
        assert result.complete is False
        assert isinstance(result.leg1, QuoteUnavailable)
        assert result.leg1.reason == "pool missing"

    def test_real_venue_quotes(self, network, engine):
        result = engine.quote_opportunity(USDC, WETH, 3000, 3000, LOAN)
        assert result.complete is True
        assert result.profitable is False

    def test_zero_test_amount(self):
        with pytest.raises(InvalidAmount):
            self._engine(MagicMock()).quote_opportunity(WETH, USDC, 3000, 500, 0)


class TestOwnerOperations:
    def test_update_settings(self, network, engine):
        receipt = network.ledger.send_transaction(OWNER, engine.update_settings, 75, 20 * GWEI, 30)
        assert receipt.status is True
        assert engine.settings.min_profit_bps == 75
        assert receipt.find_log("SettingsUpdated").fields["max_slippage_bps"] == 30

    def test_update_settings_non_owner(self, network, engine):
        receipt = network.ledger.send_transaction(OTHER, engine.update_settings, 75, GWEI, 30)
        assert receipt.revert_reason == AccessDenied.code
        assert engine.settings.min_profit_bps == 50

    def test_update_settings_out_of_range(self, network, engine):
        receipt = network.ledger.send_transaction(OWNER, engine.update_settings, 10_001, GWEI, 30)
        assert receipt.revert_reason == InvalidSettings.code

    def test_withdraw_profits(self, network, engine):
        _execute(network, engine)
        held = network.ledger.balance_of(USDC, engine.address)
        assert held > 0

        receipt = network.ledger.send_transaction(OWNER, engine.withdraw_profits, USDC)

        assert receipt.return_value == held
        assert network.ledger.balance_of(USDC, OWNER) == held
        assert network.ledger.balance_of(USDC, engine.address) == 0
        again = network.ledger.send_transaction(OWNER, engine.withdraw_profits, USDC)
        assert again.revert_reason == NothingToWithdraw.code

    def test_withdraw_profits_non_owner(self, network, engine):
        network.ledger.mint(USDC, engine.address, 10)
        receipt = network.ledger.send_transaction(OTHER, engine.withdraw_profits, USDC)
        assert receipt.revert_reason == AccessDenied.code

    def test_withdraw_reserve(self, network, engine):
        network.ledger.fund_native(engine.address, 7)
        receipt = network.ledger.send_transaction(OWNER, engine.withdraw_reserve)
        assert receipt.return_value == 7
        assert network.ledger.native_balance_of(OWNER) == 7
        assert receipt.find_log("Withdrawal").fields == {"token": NATIVE_TOKEN, "amount": 7}

    def test_withdraw_empty_reserve(self, network, engine):
        receipt = network.ledger.send_transaction(OWNER, engine.withdraw_reserve)
        assert receipt.revert_reason == NothingToWithdraw.code

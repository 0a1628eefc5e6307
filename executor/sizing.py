"""
Loan sizing and execution parameters for a chosen opportunity.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from chain.codec import ArbitrageParams
from scanner.models import Opportunity

logger = logging.getLogger(__name__)


def loan_size_usd(opportunity: Opportunity, loan_fraction: float, max_loan_usd: float) -> float:
    """
    USD value to borrow: a fraction of the thinner side's liquidity, never the
    whole pool, capped at max_loan_usd.
    """
    if not 0 < loan_fraction < 1:
        raise ValueError(f"loan_fraction must be in (0, 1), got {loan_fraction}")
    return min(opportunity.min_liquidity * loan_fraction, max_loan_usd)


def usd_to_base_units(usd: float, price_usd: float, decimals: int) -> int:
    """Convert a USD amount to token base units at the given token price."""
    if price_usd <= 0:
        return 0
    tokens = Decimal(str(usd)) / Decimal(str(price_usd))
    return int(tokens * (Decimal(10) ** decimals))


def build_params(
    opportunity: Opportunity,
    decimals: int,
    loan_fraction: float = 0.10,
    max_loan_usd: float = 50_000.0,
    fee_leg1: int = 3000,
    fee_leg2: int = 500,
    alternate_venue_id: str = "aerodrome",
    alternate_pool_selector: int = 0,
) -> ArbitrageParams | None:
    """
    Build ArbitrageParams for an opportunity. Returns None if the loan rounds
    to zero base units.

    The loan is converted at the higher of the two observed prices so the
    borrowed token amount never exceeds the USD budget.
    """
    usd = loan_size_usd(opportunity, loan_fraction, max_loan_usd)
    price = max(opportunity.price_a, opportunity.price_b)
    amount = usd_to_base_units(usd, price, decimals)
    if amount <= 0:
        logger.info("Loan for %s rounds to zero (usd=%.2f price=%.6f)", opportunity.token_in, usd, price)
        return None

    use_alternate = alternate_venue_id in (opportunity.venue_a, opportunity.venue_b)
    params = ArbitrageParams(
        token_in=opportunity.token_in,
        token_out=opportunity.token_out,
        amount_in=amount,
        fee_leg1=fee_leg1,
        fee_leg2=alternate_pool_selector if use_alternate else fee_leg2,
        use_alternate_venue=use_alternate,
    )
    logger.info(
        "Sizing: loan=$%.2f (%.0f%% of $%.2f liquidity) amount=%d alternate=%s",
        usd, loan_fraction * 100, opportunity.min_liquidity, amount, use_alternate,
    )
    return params


def build_params_from_config(opportunity: Opportunity, cfg) -> ArbitrageParams | None:
    return build_params(
        opportunity,
        decimals=cfg.decimals_for(opportunity.token_in),
        loan_fraction=cfg.loan_fraction,
        max_loan_usd=cfg.max_loan_usd,
        fee_leg1=cfg.primary_fee_leg1,
        fee_leg2=cfg.primary_fee_leg2,
        alternate_venue_id=cfg.alternate_venue_id,
        alternate_pool_selector=cfg.alternate_pool_selector,
    )

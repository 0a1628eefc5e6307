"""Gas price adjustment utilities."""

from __future__ import annotations


def adjust_gas_price(
    gas_price_wei: int,
    bump_pct: float = 10.0,
    ceiling_wei: int | None = None,
) -> int:
    """
    Bump a network gas price for faster inclusion, bounded by a ceiling.

    Args:
        gas_price_wei: Current network gas price
        bump_pct: Percentage added on top (10.0 = +10%)
        ceiling_wei: Never return more than this (None = no ceiling)

    Returns:
        Adjusted gas price in wei
    """
    if gas_price_wei < 0:
        raise ValueError(f"gas price must be non-negative, got {gas_price_wei}")
    adjusted = gas_price_wei * int(round((100.0 + bump_pct) * 100)) // 10_000
    if ceiling_wei is not None:
        adjusted = min(adjusted, ceiling_wei)
    return adjusted


__all__ = ["adjust_gas_price"]

"""
Owner-controlled execution thresholds, kept in ledger storage so a reverted
transaction also reverts any settings write it made.
"""

from __future__ import annotations

from dataclasses import dataclass

from chain.errors import AccessDenied, InvalidSettings
from chain.ledger import Ledger, normalize_address

MAX_BPS = 10_000


@dataclass(frozen=True)
class Settings:
    min_profit_bps: int = 50
    max_gas_price_wei: int = 50_000_000_000  # 50 gwei
    max_slippage_bps: int = 100


def validate_settings(settings: Settings) -> None:
    """Reject thresholds outside their meaningful ranges. Raises InvalidSettings."""
    if not 0 <= settings.min_profit_bps <= MAX_BPS:
        raise InvalidSettings(f"min_profit_bps out of range: {settings.min_profit_bps}")
    if not 0 <= settings.max_slippage_bps <= MAX_BPS:
        raise InvalidSettings(f"max_slippage_bps out of range: {settings.max_slippage_bps}")
    if settings.max_gas_price_wei <= 0:
        raise InvalidSettings(f"max_gas_price_wei must be positive: {settings.max_gas_price_wei}")


class SettingsStore:
    """Holds the current Settings. Only the owner, as msg_sender, may replace them."""

    _KEY = "settings"

    def __init__(self, ledger: Ledger, address: str, owner: str, initial: Settings | None = None):
        self._ledger = ledger
        self.address = normalize_address(address)
        self.owner = normalize_address(owner)
        initial = initial or Settings()
        validate_settings(initial)
        ledger.sstore(self.address, self._KEY, initial)

    def get(self) -> Settings:
        return self._ledger.sload(self.address, self._KEY)

    def update(self, settings: Settings) -> None:
        sender = self._ledger.msg_sender
        if sender != self.owner:
            raise AccessDenied(f"{sender} is not the settings owner")
        validate_settings(settings)
        self._ledger.sstore(self.address, self._KEY, settings)

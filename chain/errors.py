"""
On-ledger error taxonomy. Every LedgerError aborts the enclosing transaction;
the ledger rolls back all effects and reports the error code on the receipt.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all reverts. `code` is the reason reported on receipts."""

    code = "LedgerError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class AccessDenied(LedgerError):
    code = "AccessDenied"


class InvalidCaller(LedgerError):
    code = "InvalidCaller"


class InvalidInitiator(LedgerError):
    code = "InvalidInitiator"


class ReentrancyBlocked(LedgerError):
    code = "ReentrancyBlocked"


class GasPriceExceeded(LedgerError):
    code = "GasPriceExceeded"


class UnprofitableTrade(LedgerError):
    code = "UnprofitableTrade"


class InsufficientRepayment(LedgerError):
    code = "InsufficientRepayment"


class NothingToWithdraw(LedgerError):
    code = "NothingToWithdraw"


class InvalidSettings(LedgerError):
    code = "InvalidSettings"


class InvalidAmount(LedgerError):
    code = "InvalidAmount"


class InvalidParams(LedgerError):
    code = "InvalidParams"


class OutOfGas(LedgerError):
    code = "OutOfGas"


class InsufficientBalance(LedgerError):
    code = "InsufficientBalance"


class InsufficientAllowance(LedgerError):
    code = "InsufficientAllowance"


class InsufficientLiquidity(LedgerError):
    code = "InsufficientLiquidity"


class PoolNotFound(LedgerError):
    code = "PoolNotFound"


class SlippageExceeded(LedgerError):
    code = "SlippageExceeded"


class CallbackFailed(LedgerError):
    code = "CallbackFailed"


class NoTransaction(LedgerError):
    code = "NoTransaction"

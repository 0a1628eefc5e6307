"""
Engine client protocol. The controller submits execution requests through this
interface only, so a transport to a remote ledger can replace the local one
without touching controller code.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from chain.ledger import ExecutionReceipt, normalize_address
from chain.network import LocalNetwork

logger = logging.getLogger(__name__)


class SubmissionTimeout(Exception):
    """Raised when a submission does not settle within the allowed time."""
    pass


@runtime_checkable
class EngineClient(Protocol):
    """Submits owner-signed requests to a deployed ArbitrageEngine."""

    @property
    def engine_address(self) -> str:
        ...

    def request_execution(
        self,
        asset: str,
        amount: int,
        params: bytes,
        gas_price_wei: int,
        gas_limit: int,
    ) -> ExecutionReceipt:
        """Submit and wait for the transaction to settle. Reverts come back as failed receipts."""
        ...


class LocalEngineClient:
    """EngineClient backed by an in-process LocalNetwork."""

    def __init__(self, network: LocalNetwork, engine_address: str, sender: str):
        self._network = network
        self._engine_address = normalize_address(engine_address)
        self._sender = normalize_address(sender)

    @property
    def engine_address(self) -> str:
        return self._engine_address

    def request_execution(
        self,
        asset: str,
        amount: int,
        params: bytes,
        gas_price_wei: int,
        gas_limit: int,
    ) -> ExecutionReceipt:
        engine = self._network.engine_at(self._engine_address)
        receipt = self._network.ledger.send_transaction(
            self._sender,
            engine.request_execution,
            asset, amount, params,
            gas_price_wei=gas_price_wei,
            gas_limit=gas_limit,
        )
        logger.debug(
            "Submitted %s: status=%s gas_used=%d reason=%s",
            receipt.tx_hash, receipt.status, receipt.gas_used, receipt.revert_reason,
        )
        return receipt

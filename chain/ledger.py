"""
In-process ledger with all-or-nothing transactions.

All mutable on-ledger state (token balances, allowances, native balances,
contract storage, logs) lives in one LedgerState. A transaction snapshots that
state on entry and restores it when anything inside raises, so a revert deep
inside a nested call chain (loan -> callback -> swap -> swap) leaves no trace.

Gas is metered per operation; exceeding the transaction's gas limit raises
OutOfGas and rolls back like any other revert.

Contracts authenticate callers through msg_sender, never through arguments.
A contract calling another contract wraps the call in call_from(its address).
The token primitives (transfer, approve, transfer_from) take explicit
addresses and are only used from contract code.
"""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from eth_utils import keccak

from chain.errors import (
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAmount,
    LedgerError,
    NoTransaction,
    OutOfGas,
)

logger = logging.getLogger(__name__)

# Gas schedule (units per operation)
GAS_BASE_TX = 21_000
GAS_TRANSFER = 25_000
GAS_APPROVE = 22_000
GAS_SSTORE = 5_000
GAS_LOG = 2_000
GAS_SWAP = 90_000
GAS_FLASH_LOAN = 40_000

DEFAULT_GAS_LIMIT = 30_000_000
DEFAULT_BASE_GAS_PRICE_WEI = 1_000_000_000  # 1 gwei

# Pseudo-address used in logs for the chain's native asset
NATIVE_TOKEN = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"


def normalize_address(address: str) -> str:
    return address.strip().lower()


@dataclass(frozen=True)
class LogRecord:
    address: str
    name: str
    fields: dict[str, Any]
    tx_hash: str = ""


@dataclass(frozen=True)
class ExecutionReceipt:
    tx_hash: str
    status: bool
    gas_used: int
    revert_reason: str = ""
    logs: tuple[LogRecord, ...] = ()
    return_value: Any = None

    def find_log(self, name: str) -> LogRecord | None:
        for log in self.logs:
            if log.name == name:
                return log
        return None


@dataclass
class TxContext:
    tx_hash: str
    sender: str
    gas_price_wei: int
    gas_limit: int
    log_start: int
    gas_used: int = 0
    # msg_sender stack: the tx sender, then each contract that called onward
    frames: list[str] = field(default_factory=list)


@dataclass
class LedgerState:
    balances: dict[tuple[str, str], int] = field(default_factory=dict)
    allowances: dict[tuple[str, str, str], int] = field(default_factory=dict)
    native: dict[str, int] = field(default_factory=dict)
    storage: dict[str, dict[str, Any]] = field(default_factory=dict)
    logs: list[LogRecord] = field(default_factory=list)


class Ledger:
    """
    Shared ledger. Thread-safe: one re-entrant lock guards every read and
    every transaction, so no caller can observe a half-applied transaction.
    """

    def __init__(self, base_gas_price_wei: int = DEFAULT_BASE_GAS_PRICE_WEI):
        self._state = LedgerState()
        self._lock = threading.RLock()
        self._tx: TxContext | None = None
        self._contracts: dict[str, Any] = {}
        self._nonces: dict[str, int] = {}
        self._address_counter = 0
        self.base_gas_price_wei = base_gas_price_wei

    # ── Addresses & contracts ──

    def new_address(self, label: str = "") -> str:
        with self._lock:
            self._address_counter += 1
            digest = keccak(text=f"{label}:{self._address_counter}")
            return "0x" + digest[-20:].hex()

    def register_contract(self, address: str, contract: Any) -> None:
        with self._lock:
            self._contracts[normalize_address(address)] = contract

    def contract_at(self, address: str) -> Any:
        with self._lock:
            contract = self._contracts.get(normalize_address(address))
        if contract is None:
            raise KeyError(f"No contract at {address}")
        return contract

    # ── Transactions ──

    @property
    def current_tx(self) -> TxContext | None:
        return self._tx

    @property
    def tx_gas_price(self) -> int:
        """Gas price offered by the current transaction (0 outside one)."""
        return self._tx.gas_price_wei if self._tx is not None else 0

    def gas_used(self) -> int:
        return self._tx.gas_used if self._tx is not None else 0

    @property
    def msg_sender(self) -> str:
        """
        Address that made the call now executing: the transaction sender at
        the top level, or the contract that called in via call_from().
        Raises NoTransaction outside a transaction.
        """
        with self._lock:
            if self._tx is None:
                raise NoTransaction("no transaction in progress")
            return self._tx.frames[-1]

    @contextmanager
    def call_from(self, address: str) -> Iterator[None]:
        """Calls made inside the block see `address` as msg_sender."""
        with self._lock:
            tx = self._tx
            if tx is None:
                raise NoTransaction("no transaction in progress")
            tx.frames.append(normalize_address(address))
            try:
                yield
            finally:
                tx.frames.pop()

    def charge(self, units: int) -> None:
        """Meter gas for the current transaction. No-op for read-only calls."""
        tx = self._tx
        if tx is None:
            return
        if tx.gas_used + units > tx.gas_limit:
            tx.gas_used = tx.gas_limit
            raise OutOfGas(f"gas limit {tx.gas_limit} exhausted")
        tx.gas_used += units

    @contextmanager
    def transaction(
        self,
        sender: str,
        gas_price_wei: int = 0,
        gas_limit: int = DEFAULT_GAS_LIMIT,
    ) -> Iterator[TxContext]:
        """Run a block atomically. Any exception restores the pre-transaction state."""
        with self._lock:
            if self._tx is not None:
                raise RuntimeError("nested transactions are not supported")
            tx = TxContext(
                tx_hash=self._next_tx_hash(sender),
                sender=normalize_address(sender),
                gas_price_wei=gas_price_wei,
                gas_limit=gas_limit,
                log_start=len(self._state.logs),
                frames=[normalize_address(sender)],
            )
            snapshot = self._snapshot()
            self._tx = tx
            try:
                self.charge(GAS_BASE_TX)
                yield tx
            except BaseException:
                self._restore(snapshot)
                raise
            finally:
                self._tx = None

    def send_transaction(
        self,
        sender: str,
        fn: Callable[..., Any],
        *args: Any,
        gas_price_wei: int = 0,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        **kwargs: Any,
    ) -> ExecutionReceipt:
        """
        Execute fn inside a transaction and return a receipt.
        Reverts (LedgerError) produce a failed receipt; anything else propagates
        after rollback.
        """
        tx: TxContext | None = None
        try:
            with self.transaction(sender, gas_price_wei, gas_limit) as tx:
                result = fn(*args, **kwargs)
                logs = tuple(self._state.logs[tx.log_start:])
        except LedgerError as e:
            logger.debug("Transaction reverted: %s (%s)", e.code, e.message)
            return ExecutionReceipt(
                tx_hash=tx.tx_hash if tx is not None else "",
                status=False,
                gas_used=tx.gas_used if tx is not None else 0,
                revert_reason=e.code,
            )
        return ExecutionReceipt(
            tx_hash=tx.tx_hash,
            status=True,
            gas_used=tx.gas_used,
            logs=logs,
            return_value=result,
        )

    def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Read-only call: state is always restored afterwards."""
        with self._lock:
            snapshot = self._snapshot()
            try:
                return fn(*args, **kwargs)
            finally:
                self._restore(snapshot)

    def _next_tx_hash(self, sender: str) -> str:
        sender = normalize_address(sender)
        nonce = self._nonces.get(sender, 0)
        self._nonces[sender] = nonce + 1
        return "0x" + keccak(text=f"{sender}:{nonce}").hex()

    def _snapshot(self) -> tuple[LedgerState, int]:
        s = self._state
        frozen = LedgerState(
            balances=dict(s.balances),
            allowances=dict(s.allowances),
            native=dict(s.native),
            storage=copy.deepcopy(s.storage),
        )
        return frozen, len(s.logs)

    def _restore(self, snapshot: tuple[LedgerState, int]) -> None:
        saved, n_logs = snapshot
        logs = self._state.logs
        del logs[n_logs:]
        saved.logs = logs
        self._state = saved

    # ── Tokens ──

    def balance_of(self, token: str, holder: str) -> int:
        with self._lock:
            return self._state.balances.get((normalize_address(token), normalize_address(holder)), 0)

    def allowance(self, token: str, owner: str, spender: str) -> int:
        with self._lock:
            key = (normalize_address(token), normalize_address(owner), normalize_address(spender))
            return self._state.allowances.get(key, 0)

    def mint(self, token: str, to: str, amount: int) -> None:
        """Credit tokens out of thin air. Setup only."""
        if amount < 0:
            raise InvalidAmount(f"negative mint {amount}")
        with self._lock:
            key = (normalize_address(token), normalize_address(to))
            self._state.balances[key] = self._state.balances.get(key, 0) + amount

    def transfer(self, token: str, sender: str, to: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"negative transfer {amount}")
        with self._lock:
            self.charge(GAS_TRANSFER)
            token, sender, to = normalize_address(token), normalize_address(sender), normalize_address(to)
            balances = self._state.balances
            held = balances.get((token, sender), 0)
            if held < amount:
                raise InsufficientBalance(f"{sender} holds {held} of {token}, needs {amount}")
            balances[(token, sender)] = held - amount
            balances[(token, to)] = balances.get((token, to), 0) + amount

    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"negative approval {amount}")
        with self._lock:
            self.charge(GAS_APPROVE)
            key = (normalize_address(token), normalize_address(owner), normalize_address(spender))
            self._state.allowances[key] = amount

    def transfer_from(self, token: str, spender: str, owner: str, to: str, amount: int) -> None:
        with self._lock:
            key = (normalize_address(token), normalize_address(owner), normalize_address(spender))
            allowed = self._state.allowances.get(key, 0)
            if allowed < amount:
                raise InsufficientAllowance(f"{spender} may move {allowed} of {token}, needs {amount}")
            self._state.allowances[key] = allowed - amount
            self.transfer(token, owner, to, amount)

    # ── Native asset ──

    def native_balance_of(self, holder: str) -> int:
        with self._lock:
            return self._state.native.get(normalize_address(holder), 0)

    def fund_native(self, holder: str, amount: int) -> None:
        """Credit native balance. Setup only."""
        with self._lock:
            holder = normalize_address(holder)
            self._state.native[holder] = self._state.native.get(holder, 0) + amount

    def send_native(self, sender: str, to: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"negative native transfer {amount}")
        with self._lock:
            self.charge(GAS_TRANSFER)
            sender, to = normalize_address(sender), normalize_address(to)
            native = self._state.native
            held = native.get(sender, 0)
            if held < amount:
                raise InsufficientBalance(f"{sender} holds {held} native, needs {amount}")
            native[sender] = held - amount
            native[to] = native.get(to, 0) + amount

    # ── Storage & logs ──

    def sload(self, address: str, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._state.storage.get(normalize_address(address), {}).get(key, default)

    def sstore(self, address: str, key: str, value: Any) -> None:
        with self._lock:
            self.charge(GAS_SSTORE)
            self._state.storage.setdefault(normalize_address(address), {})[key] = value

    def emit(self, address: str, name: str, **fields: Any) -> LogRecord:
        with self._lock:
            self.charge(GAS_LOG)
            record = LogRecord(
                address=normalize_address(address),
                name=name,
                fields=dict(fields),
                tx_hash=self._tx.tx_hash if self._tx is not None else "",
            )
            self._state.logs.append(record)
            return record

    def logs(self, name: str | None = None) -> list[LogRecord]:
        with self._lock:
            if name is None:
                return list(self._state.logs)
            return [log for log in self._state.logs if log.name == name]

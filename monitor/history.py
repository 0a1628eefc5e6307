"""
Execution outcome tracking with append-only JSON ledger.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import Counter
from dataclasses import asdict, dataclass, field

from scanner.models import ExecutionOutcome

logger = logging.getLogger(__name__)

LEDGER_FILE = "outcomes.ndjson"


@dataclass
class OutcomeEntry:
    timestamp: float
    succeeded: bool
    token_in: str
    token_out: str
    venue_a: str
    venue_b: str
    price_delta_pct: float
    profit_realized: int | None
    transaction_reference: str | None
    failure_reason: str | None
    gas_used: int


@dataclass
class OutcomeHistory:
    """Aggregate execution outcomes and persist each one to disk."""

    ledger_path: str | None = LEDGER_FILE

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_gas_used: int = 0
    profit_by_asset: dict[str, int] = field(default_factory=dict)
    failure_reasons: Counter = field(default_factory=Counter)
    last_outcome: ExecutionOutcome | None = None

    _session_start: float = field(default_factory=time.time)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, outcome: ExecutionOutcome) -> None:
        """Record one attempt. Updates aggregates and appends to the ledger."""
        opp = outcome.opportunity
        with self._lock:
            self.attempts += 1
            self.total_gas_used += outcome.gas_used
            self.last_outcome = outcome
            if outcome.succeeded:
                self.successes += 1
                if opp is not None and outcome.profit_realized:
                    self.profit_by_asset[opp.token_in] = (
                        self.profit_by_asset.get(opp.token_in, 0) + outcome.profit_realized
                    )
            else:
                self.failures += 1
                self.failure_reasons[outcome.failure_reason or "unknown"] += 1

        entry = OutcomeEntry(
            timestamp=outcome.timestamp,
            succeeded=outcome.succeeded,
            token_in=opp.token_in if opp else "",
            token_out=opp.token_out if opp else "",
            venue_a=opp.venue_a if opp else "",
            venue_b=opp.venue_b if opp else "",
            price_delta_pct=opp.price_delta_pct if opp else 0.0,
            profit_realized=outcome.profit_realized,
            transaction_reference=outcome.transaction_reference,
            failure_reason=outcome.failure_reason,
            gas_used=outcome.gas_used,
        )
        if self.ledger_path:
            self._append_ledger(entry)

        logger.info(
            "Outcome: %s attempts=%d success_rate=%.1f%%",
            "success" if outcome.succeeded else f"failed ({outcome.failure_reason})",
            self.attempts, self.success_rate,
        )

    def _append_ledger(self, entry: OutcomeEntry) -> None:
        """Append an outcome to the JSON ledger file (one JSON object per line)."""
        try:
            with open(self.ledger_path, "a") as f:
                f.write(json.dumps(asdict(entry), separators=(",", ":")) + "\n")
        except OSError as e:
            logger.warning("Could not append outcome to %s: %s", self.ledger_path, e)

    @property
    def success_rate(self) -> float:
        if self.attempts == 0:
            return 0.0
        return (self.successes / self.attempts) * 100.0

    @property
    def session_duration_sec(self) -> float:
        return time.time() - self._session_start

    def summary(self) -> dict:
        """Return a summary dict of outcome state."""
        with self._lock:
            return {
                "attempts": self.attempts,
                "successes": self.successes,
                "failures": self.failures,
                "success_rate_pct": round(self.success_rate, 1),
                "total_gas_used": self.total_gas_used,
                "profit_by_asset": {k: str(v) for k, v in self.profit_by_asset.items()},
                "failure_reasons": dict(self.failure_reasons),
                "session_duration_sec": round(self.session_duration_sec, 0),
            }

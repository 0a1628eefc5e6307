"""
Execution controller: scan -> pick best -> execute -> wait, forever, until stopped.

State machine:
    IDLE -> SCANNING -> (EXECUTING | SCANNING) -> COOLDOWN -> SCANNING
and any state -> IDLE once a stop request is observed between iterations.

At most one execution is outstanding at a time. A submission that times out
stays pending and blocks new executions until it settles. Failures of any
kind route to COOLDOWN and never escape the loop.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from enum import Enum
from typing import Callable

from chain.codec import ArbitrageParams, encode_params
from chain.ledger import ExecutionReceipt
from executor.gateway import EngineClient, SubmissionTimeout
from executor.sizing import build_params, build_params_from_config
from monitor.history import OutcomeHistory
from pipeline.gas_utils import adjust_gas_price
from scanner.models import ExecutionOutcome, Opportunity
from scanner.opportunities import OpportunityScanner

logger = logging.getLogger(__name__)


class ControllerState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    EXECUTING = "executing"
    COOLDOWN = "cooldown"


def outcome_from_receipt(receipt: ExecutionReceipt, opportunity: Opportunity) -> ExecutionOutcome:
    if not receipt.status:
        return ExecutionOutcome(
            succeeded=False,
            opportunity=opportunity,
            transaction_reference=receipt.tx_hash or None,
            failure_reason=receipt.revert_reason or "reverted",
            gas_used=receipt.gas_used,
        )
    executed = receipt.find_log("ArbitrageExecuted")
    return ExecutionOutcome(
        succeeded=True,
        opportunity=opportunity,
        profit_realized=int(executed.fields["profit"]) if executed is not None else None,
        transaction_reference=receipt.tx_hash,
        gas_used=receipt.gas_used,
    )


class ExecutionController:

    def __init__(
        self,
        scanner: OpportunityScanner,
        engine_client: EngineClient,
        gas_price_fn: Callable[[], int],
        history: OutcomeHistory | None = None,
        param_builder: Callable[[Opportunity], ArbitrageParams | None] | None = None,
        before_submit: Callable[[Opportunity, ArbitrageParams], None] | None = None,
        execute_threshold_pct: float = 3.0,
        gas_bump_pct: float = 10.0,
        max_gas_price_wei: int | None = None,
        gas_limit: int = 500_000,
        scan_interval_sec: float = 30.0,
        cooldown_sec: float = 60.0,
        submit_timeout_sec: float = 120.0,
        wait: Callable[[float], object] | None = None,
    ):
        self._scanner = scanner
        self._client = engine_client
        self._gas_price_fn = gas_price_fn
        self._history = history if history is not None else OutcomeHistory(ledger_path=None)
        self._param_builder = param_builder or (lambda opp: build_params(opp, decimals=18))
        self._before_submit = before_submit
        self.execute_threshold_pct = execute_threshold_pct
        self.gas_bump_pct = gas_bump_pct
        self.max_gas_price_wei = max_gas_price_wei
        self.gas_limit = gas_limit
        self.scan_interval_sec = scan_interval_sec
        self.cooldown_sec = cooldown_sec
        self.submit_timeout_sec = submit_timeout_sec

        self._stop = threading.Event()
        self._wait = wait or self._stop.wait
        self._start_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._submitter = ThreadPoolExecutor(max_workers=1, thread_name_prefix="engine-submit")
        self._pending: Future | None = None
        self._exiting = False
        self._state = ControllerState.IDLE
        self.last_outcome: ExecutionOutcome | None = None

    @classmethod
    def from_config(
        cls,
        cfg,
        scanner: OpportunityScanner,
        engine_client: EngineClient,
        gas_price_fn: Callable[[], int],
        history: OutcomeHistory | None = None,
        before_submit: Callable[[Opportunity, ArbitrageParams], None] | None = None,
    ) -> "ExecutionController":
        return cls(
            scanner=scanner,
            engine_client=engine_client,
            gas_price_fn=gas_price_fn,
            history=history,
            param_builder=lambda opp: build_params_from_config(opp, cfg),
            before_submit=before_submit,
            execute_threshold_pct=cfg.execute_threshold_pct,
            gas_bump_pct=cfg.gas_bump_pct,
            max_gas_price_wei=cfg.max_gas_price_wei,
            gas_limit=cfg.gas_limit,
            scan_interval_sec=cfg.scan_interval_sec,
            cooldown_sec=cfg.cooldown_sec,
            submit_timeout_sec=cfg.submit_timeout_sec,
        )

    # ── State ──

    @property
    def state(self) -> ControllerState:
        return self._state

    def _set_state(self, state: ControllerState) -> None:
        if state != self._state:
            logger.debug("Controller %s -> %s", self._state.value, state.value)
        self._state = state

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def history(self) -> OutcomeHistory:
        return self._history

    # ── Lifecycle ──

    def start(self) -> bool:
        """
        Run the loop on a daemon thread. Returns False if a loop is already running.

        A start() that arrives after stop() but before the loop has observed
        the stop withdraws the stop request, so the running loop carries on.
        """
        with self._start_lock:
            if self._thread is not None and self._thread.is_alive():
                if not self._stop.is_set():
                    logger.info("Bot already running")
                    return False
                if not self._exiting:
                    self._stop.clear()
                    logger.info("Stop withdrawn; bot keeps running")
                    return True
                # Loop is past its last check; let it finish before replacing it
                self._thread.join()
            self._stop.clear()
            self._exiting = False
            self._thread = threading.Thread(target=self.run_forever, daemon=True, name="arb-controller")
            self._thread.start()
            return True

    def stop(self) -> None:
        """Request a stop. Honored between iterations; never interrupts a submission."""
        self._stop.set()
        logger.info("Stop requested")

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def close(self) -> None:
        self.stop()
        self._submitter.shutdown(wait=False)

    def _should_exit(self) -> bool:
        with self._start_lock:
            if self._stop.is_set():
                self._exiting = True
            return self._exiting

    def run_forever(self) -> None:
        logger.info("Starting arbitrage bot...")
        self._exiting = False
        try:
            while not self._should_exit():
                try:
                    delay = self.run_iteration()
                except Exception as e:
                    logger.error("Iteration failed: %s", e, exc_info=True)
                    self._set_state(ControllerState.COOLDOWN)
                    delay = self.cooldown_sec
                if self._should_exit():
                    break
                logger.debug("Sleeping %.1fs until next scan...", delay)
                self._wait(delay)
        finally:
            self._set_state(ControllerState.IDLE)
            logger.info("Arbitrage bot stopped")

    # ── One iteration ──

    def run_iteration(self) -> float:
        """Scan once and maybe execute. Returns how long to wait before the next scan."""
        self._set_state(ControllerState.SCANNING)
        logger.info("Scanning for arbitrage opportunities...")
        try:
            opportunities = self._scanner.scan()
        except Exception as e:
            logger.warning("Scan failed, cooling down %.0fs: %s", self.cooldown_sec, e)
            logger.debug("Scan failure detail", exc_info=True)
            self._set_state(ControllerState.COOLDOWN)
            return self.cooldown_sec

        if not opportunities:
            logger.info("No profitable opportunities found")
            return self.scan_interval_sec

        best = opportunities[0]
        logger.info("Found %d opportunities, best %.2f%%", len(opportunities), best.price_delta_pct)
        if best.price_delta_pct <= self.execute_threshold_pct:
            logger.info(
                "Best delta %.2f%% does not exceed execution threshold %.2f%%",
                best.price_delta_pct, self.execute_threshold_pct,
            )
            return self.scan_interval_sec

        outcome = self.execute(best)
        if outcome is None or outcome.succeeded:
            self._set_state(ControllerState.SCANNING)
            return self.scan_interval_sec

        logger.warning("Execution failed (%s), cooling down %.0fs", outcome.failure_reason, self.cooldown_sec)
        self._set_state(ControllerState.COOLDOWN)
        return self.cooldown_sec

    def execute(self, opportunity: Opportunity) -> ExecutionOutcome | None:
        """
        Submit one execution and wait for it to settle. Returns None when the
        attempt was skipped (earlier submission unresolved, or zero-size loan).
        """
        if self._pending is not None and not self._pending.done():
            logger.warning("Previous submission still unresolved; not starting another")
            return None

        params = self._param_builder(opportunity)
        if params is None:
            return None

        self._set_state(ControllerState.EXECUTING)
        logger.info(
            "Executing arbitrage: %s -> %s via %s/%s (%.2f%%)",
            opportunity.token_in, opportunity.token_out,
            opportunity.venue_a, opportunity.venue_b, opportunity.price_delta_pct,
        )
        try:
            if self._before_submit is not None:
                self._before_submit(opportunity, params)
            gas_price = adjust_gas_price(self._gas_price_fn(), self.gas_bump_pct, self.max_gas_price_wei)
            encoded = encode_params(params)
            future = self._submitter.submit(
                self._client.request_execution,
                params.token_in, params.amount_in, encoded, gas_price, self.gas_limit,
            )
            self._pending = future
            try:
                receipt = future.result(timeout=self.submit_timeout_sec)
            except FuturesTimeout:
                raise SubmissionTimeout(f"no receipt after {self.submit_timeout_sec:.0f}s") from None
            outcome = outcome_from_receipt(receipt, opportunity)
        except Exception as e:
            logger.error("Error executing arbitrage: %s", e, exc_info=True)
            outcome = ExecutionOutcome(
                succeeded=False,
                opportunity=opportunity,
                failure_reason=f"{type(e).__name__}: {e}",
            )

        if outcome.succeeded:
            logger.info("Arbitrage successful! TX: %s profit=%s", outcome.transaction_reference, outcome.profit_realized)
        else:
            logger.info("Arbitrage failed: %s", outcome.failure_reason)
        self.last_outcome = outcome
        self._history.record(outcome)
        return outcome

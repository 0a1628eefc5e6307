"""
Bot runtime: everything the dashboard API acts on (network, owner wallet,
deployed engine, controller) held in one explicit object instead of
process-wide globals.

The local network has no market of its own. Before each submission the
runtime resets the two pools the trade will touch to the prices and depth
the feed reported for that opportunity, and tops up the lender, so the
engine trades against what was actually observed.
"""

from __future__ import annotations

import logging
import threading

from chain.codec import ArbitrageParams
from chain.network import LocalNetwork, ephemeral_wallet_address, wallet_address
from chain.settings import Settings
from client.gas import GasOracle
from config import Config
from executor.controller import ControllerState, ExecutionController
from executor.gateway import LocalEngineClient
from executor.sizing import usd_to_base_units
from monitor.history import OutcomeHistory
from scanner.models import Opportunity
from scanner.opportunities import OpportunityScanner

logger = logging.getLogger(__name__)


class EngineNotDeployed(Exception):
    """Raised when an operation needs a deployed engine and none exists."""
    pass


class BotRuntime:

    def __init__(
        self,
        cfg: Config,
        network: LocalNetwork | None = None,
        scanner: OpportunityScanner | None = None,
        gas_oracle: GasOracle | None = None,
        history: OutcomeHistory | None = None,
    ):
        self.cfg = cfg
        self.network = network or LocalNetwork(
            name=cfg.network_name,
            base_gas_price_wei=int(cfg.local_gas_price_gwei * 1_000_000_000),
        )
        if cfg.private_key:
            self.wallet_address = wallet_address(cfg.private_key)
        else:
            logger.warning("PRIVATE_KEY not set; using an ephemeral key for this session")
            self.wallet_address = ephemeral_wallet_address()
        self.scanner = scanner or OpportunityScanner.from_config(cfg)
        self.gas_oracle = gas_oracle or GasOracle(
            rpc_url=cfg.rpc_url,
            cache_sec=cfg.gas_cache_sec,
            default_gas_gwei=cfg.local_gas_price_gwei,
            allow_network=cfg.allow_network_gas,
        )
        self.history = history or OutcomeHistory(ledger_path=cfg.outcome_ledger_path)
        self.engine_address: str | None = None
        self.controller: ExecutionController | None = None
        self._lock = threading.Lock()

    def gas_price_wei(self) -> int:
        """Network gas price: the RPC oracle when enabled, else the local network's."""
        if self.cfg.allow_network_gas:
            return self.gas_oracle.get_gas_price_wei()
        return self.network.gas_price_wei()

    @property
    def deployed(self) -> bool:
        return self.engine_address is not None

    @property
    def running(self) -> bool:
        return self.controller is not None and self.controller.running

    def deploy(self) -> str:
        """Deploy a fresh engine owned by the wallet. Stops any loop bound to the old one."""
        with self._lock:
            if self.controller is not None:
                self.controller.close()
            logger.info("Deploying ArbitrageEngine to %s...", self.network.name)
            settings = Settings(
                min_profit_bps=self.cfg.engine_min_profit_bps,
                max_gas_price_wei=self.cfg.max_gas_price_wei,
                max_slippage_bps=self.cfg.engine_max_slippage_bps,
            )
            self.engine_address = self.network.deploy_engine(self.wallet_address, settings)
            client = LocalEngineClient(self.network, self.engine_address, self.wallet_address)
            self.controller = ExecutionController.from_config(
                self.cfg, self.scanner, client, self.gas_price_wei, self.history,
                before_submit=self.mirror_market if self.cfg.mirror_observed_market else None,
            )
            return self.engine_address

    def start(self) -> bool:
        with self._lock:
            if self.controller is None:
                raise EngineNotDeployed("Engine not deployed")
            return self.controller.start()

    def stop(self) -> None:
        with self._lock:
            if self.controller is not None:
                self.controller.stop()

    def opportunities(self) -> list[dict]:
        return [opp.to_dict() for opp in self.scanner.scan()]

    def status(self) -> dict:
        balance_wei = self.network.ledger.native_balance_of(self.wallet_address)
        state = self.controller.state if self.controller is not None else ControllerState.IDLE
        return {
            "walletAddress": self.wallet_address,
            "balance": f"{balance_wei / 10**18:.6f}",
            "engineAddress": self.engine_address,
            "deployed": self.deployed,
            "running": self.running,
            "state": state.value,
            "network": self.network.name,
            "outcomes": self.history.summary(),
        }

    # ── Local market ──

    def mirror_market(self, opportunity: Opportunity, params: ArbitrageParams) -> None:
        """
        Seed the pools for both legs from the opportunity's observed quotes
        and make sure the lender can cover params.amount_in.

        Leg 1 always runs on the primary venue. With the alternate venue in
        play, the side reported by the alternate venue id backs leg 2 and the
        other side backs leg 1; otherwise side A backs the leg-1 fee tier and
        side B the leg-2 fee tier.
        """
        if not opportunity.native_price_a or not opportunity.native_price_b:
            logger.warning("No native prices for %s; local pools left as they are", opportunity.token_in)
            return

        side_a = (opportunity.price_a, opportunity.native_price_a, opportunity.liquidity_a)
        side_b = (opportunity.price_b, opportunity.native_price_b, opportunity.liquidity_b)
        if params.use_alternate_venue:
            alternate_id = self.cfg.alternate_venue_id
            if opportunity.venue_a == alternate_id and opportunity.venue_b != alternate_id:
                side_a, side_b = side_b, side_a
            legs = ((params.fee_leg1, side_a, False), (params.fee_leg2, side_b, True))
        else:
            legs = ((params.fee_leg1, side_a, False), (params.fee_leg2, side_b, False))

        for pool, (price_usd, price_native, liquidity_usd), alternate in legs:
            reserve_in, reserve_out = self._observed_reserves(
                params.token_in, params.token_out, price_usd, price_native, liquidity_usd,
            )
            if reserve_in <= 0 or reserve_out <= 0:
                logger.warning("Observed depth for %s rounds to zero; pool %s not seeded", params.token_in, pool)
                continue
            self.network.seed_pair(
                params.token_in, params.token_out, pool, reserve_in, reserve_out, alternate=alternate,
            )

        self.network.ensure_lender_funds(params.token_in, params.amount_in)

    def _observed_reserves(
        self,
        token_in: str,
        token_out: str,
        price_usd: float,
        price_native: float,
        liquidity_usd: float,
    ) -> tuple[int, int]:
        # Half the reported liquidity sits on each side of the pool
        half = liquidity_usd / 2
        reserve_in = usd_to_base_units(half, price_usd, self.cfg.decimals_for(token_in))
        reserve_out = usd_to_base_units(half, price_usd / price_native, self.cfg.decimals_for(token_out))
        return reserve_in, reserve_out

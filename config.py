"""
Configuration loaded from environment variables. Fail-fast on invalid values.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

# Key tokens on Base to monitor
WETH = "0x4200000000000000000000000000000000000006"
USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
USDBC = "0xd9aaec86b65d86f6a7b5b1b0c42ffa531710b6ca"


class Config(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True, "extra": "ignore"}

    # Credentials: signing key of the engine owner. Injected, never hard-coded.
    private_key: str = Field(default="", description="Owner wallet private key (hex)")

    # Network
    network_name: str = "Base Mainnet"
    chain_id: str = "base"
    rpc_url: str = "https://mainnet.base.org"
    allow_network_gas: bool = False
    local_gas_price_gwei: float = Field(default=1.0, gt=0)

    # Price feed
    feed_host: str = "https://api.dexscreener.com/latest/dex"
    feed_timeout_sec: float = Field(default=10.0, gt=0)
    monitored_tokens: tuple[str, ...] = (WETH, USDC, USDBC)

    # Scanner filters
    min_liquidity_usd: float = Field(default=1000.0, ge=0)
    min_delta_pct: float = Field(default=2.0, ge=0)
    max_delta_pct: float = Field(default=50.0, gt=0)
    min_price: float = Field(default=1e-6, gt=0)
    max_price: float = Field(default=1e6, gt=0)
    max_price_ratio: float = Field(default=10.0, ge=1.0)
    top_k: int = Field(default=10, ge=1)

    # Execution policy
    # Top opportunity must exceed this to be executed (stricter than min_delta_pct)
    execute_threshold_pct: float = Field(default=3.0, gt=0)
    loan_fraction: float = Field(default=0.10, gt=0, lt=1.0)
    max_loan_usd: float = Field(default=50_000.0, gt=0)
    token_decimals: dict[str, int] = Field(default_factory=lambda: {WETH: 18, USDC: 6, USDBC: 6})
    default_token_decimals: int = Field(default=18, ge=0, le=36)
    primary_fee_leg1: int = 3000   # 0.3%
    primary_fee_leg2: int = 500    # 0.05%
    alternate_venue_id: str = "aerodrome"
    alternate_pool_selector: int = Field(default=0, ge=0, le=1)  # 0 volatile, 1 stable
    # Reset the local pools to the observed prices and depth before each submission
    mirror_observed_market: bool = True

    # Gas
    gas_limit: int = Field(default=500_000, gt=21_000)
    gas_bump_pct: float = Field(default=10.0, ge=0, le=100.0)
    max_gas_price_gwei: float = Field(default=50.0, gt=0)
    gas_cache_sec: float = Field(default=10.0, ge=0)

    # Engine settings applied at deployment
    engine_min_profit_bps: int = Field(default=50, ge=0, le=10_000)
    engine_max_slippage_bps: int = Field(default=100, ge=0, le=10_000)

    # Timing
    scan_interval_sec: float = Field(default=30.0, gt=0)
    cooldown_sec: float = Field(default=60.0, gt=0)
    submit_timeout_sec: float = Field(default=120.0, gt=0)

    # Dashboard API
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=3001, ge=1, le=65535)

    # Logging / outcome ledger
    log_level: str = "INFO"
    outcome_ledger_path: str = "outcomes.ndjson"

    @model_validator(mode="after")
    def _check_thresholds(self) -> "Config":
        if self.max_delta_pct <= self.min_delta_pct:
            raise ValueError("max_delta_pct must exceed min_delta_pct")
        if self.execute_threshold_pct < self.min_delta_pct:
            raise ValueError("execute_threshold_pct must be at least min_delta_pct")
        if self.max_price <= self.min_price:
            raise ValueError("max_price must exceed min_price")
        return self

    @property
    def max_gas_price_wei(self) -> int:
        return int(self.max_gas_price_gwei * 1_000_000_000)

    def decimals_for(self, token: str) -> int:
        return self.token_decimals.get(token.lower(), self.default_token_decimals)


def load_config() -> Config:
    """Load and validate config from environment. Raises on invalid fields."""
    return Config()

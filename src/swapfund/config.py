"""Application configuration using pydantic-settings.

Defaults target Base mainnet, where the deposit venue and the
Uniswap V3 / 1inch liquidity sources live.
"""

import logging
from decimal import Decimal
from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExecutionMode(str, Enum):
    """Whether state-changing collaborators may be called."""

    SIMULATION = "simulation"
    LIVE = "live"


DEFAULT_TOKENS: dict[str, str] = {
    # Stablecoins
    "USDC": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    "USDbC": "0xd9aAEc86B65D86f6A7B5B1b0c42FFA531710b6CA",
    "USDT": "0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2",
    "DAI": "0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb",
    "GHO": "0x6Bb7a212910682DCFdbd5BCBb3e28FB4E8da10Ee",
    "EURC": "0x60a3E35Cc302bFA44Cb288Bc5a4F316Fdb1adb42",
    # ETH and liquid staking tokens
    "WETH": "0x4200000000000000000000000000000000000006",
    "cbETH": "0x2Ae3F1Ec7F1F5012CFEab0185bfc7aa3cf0DEc22",
    "wstETH": "0xc1CBa3fCea344f92D9239c08C0568f6F2F0ee452",
    "weETH": "0x04C0599Ae5A44757c0af6F9eC3b93da8976c150A",
    "ezETH": "0x2416092f143378750bb29b79eD961ab195CcEea5",
    "wrsETH": "0xEDfa23602D0EC14714057867A78d01e94176BEA0",
    # Bitcoin variants
    "cbBTC": "0xcbB7C0000aB88B473b1f5aFd9ef808440eed33Bf",
    "LBTC": "0xecAc9C5F704e954931349Da37F60E39f515c11c1",
    # Governance
    "AAVE": "0x63706e401c06ac8513145b7687A14804d17f814b",
}

DEFAULT_DECIMALS: dict[str, int] = {
    "ETH": 18,
    "USDC": 6,
    "USDbC": 6,
    "USDT": 6,
    "DAI": 18,
    "GHO": 18,
    "EURC": 6,
    "WETH": 18,
    "cbETH": 18,
    "wstETH": 18,
    "weETH": 18,
    "ezETH": 18,
    "wrsETH": 18,
    "cbBTC": 8,
    "LBTC": 8,
    "AAVE": 18,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")
    log_level: str = Field(default="INFO", description="Log level when debug is off")

    # ======================
    # Chain
    # ======================
    chain_id: int = Field(default=8453, description="EVM chain id (Base mainnet)")
    rpc_url: str = Field(default="https://base-rpc.publicnode.com", description="RPC URL")
    native_asset: str = Field(default="ETH", description="Native gas asset symbol")
    wrapped_native_asset: str = Field(default="WETH", description="Wrapped native asset symbol")
    tokens: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_TOKENS),
        description="Token symbol -> contract address",
    )
    known_decimals: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_DECIMALS),
        description="Decimals preloaded into the decimals cache",
    )

    # ======================
    # Uniswap V3
    # ======================
    uniswap_quoter_address: str = Field(
        default="0x3d4e44Eb1374240CE5F1B871ab261CD16335B76a",
        description="Uniswap V3 quoter contract",
    )
    uniswap_router_address: str = Field(
        default="0x2626664c2603336E57B271c5C0b26F421741e481",
        description="Uniswap V3 swap router contract",
    )
    fee_tiers: list[int] = Field(
        default_factory=lambda: [100, 500, 3000, 10000],
        description="Pool fee tiers in hundredths of a bip (0.01%, 0.05%, 0.3%, 1%)",
    )
    intermediate_assets: list[str] = Field(
        default_factory=lambda: ["WETH", "DAI", "USDC"],
        description="Assets tried as the middle leg of two-hop routes",
    )
    default_execution_fee_tier: int = Field(
        default=3000,
        description="Pool fee tier used to execute a hop priced by the aggregator",
    )

    # ======================
    # 1inch aggregator
    # ======================
    oneinch_api_url: str = Field(default="https://api.1inch.dev", description="1inch API base URL")
    oneinch_api_key: str = Field(default="", description="1inch API key")
    aggregator_is_default: bool = Field(
        default=True, description="Use an aggregator quote without comparing pools"
    )
    aggregator_fee_bps: Decimal = Field(
        default=Decimal("10"), description="Flat fee reported for aggregator quotes (bps)"
    )
    http_timeout_seconds: float = Field(default=30.0, description="HTTP timeout")

    # ======================
    # Funding
    # ======================
    funding_priority_assets: list[str] = Field(
        default_factory=lambda: [
            "USDC", "USDbC", "USDT", "DAI", "GHO", "EURC",
            "WETH", "cbETH", "wstETH", "weETH", "ezETH", "wrsETH",
        ],
        description="Funding candidates tried right after the native asset",
    )
    gas_reserve: Decimal = Field(
        default=Decimal("0.01"), description="Native asset kept back for gas"
    )
    funding_safety_buffer: Decimal = Field(
        default=Decimal("0.01"), description="Over-estimate applied to funding amounts (1%)"
    )
    default_max_slippage_pct: Decimal = Field(
        default=Decimal("1"), description="Default max slippage in percent"
    )

    # ======================
    # Safety Guards
    # ======================
    auto_execute: bool = Field(
        default=False, description="Send transactions (False = simulation only)"
    )
    dry_run: bool = Field(
        default=True, description="Use simulated quote providers instead of live ones"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def execution_mode(self) -> ExecutionMode:
        return ExecutionMode.LIVE if self.auto_execute else ExecutionMode.SIMULATION

    @property
    def has_aggregator_credentials(self) -> bool:
        return bool(self.oneinch_api_key)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "chain_id": self.chain_id,
            "rpc_url": self.rpc_url,
            "dry_run": self.dry_run,
            "auto_execute": self.auto_execute,
            "oneinch_api_key": "***" if self.oneinch_api_key else "(not set)",
            "routing": {
                "fee_tiers": self.fee_tiers,
                "intermediates": self.intermediate_assets,
                "aggregator_is_default": self.aggregator_is_default,
                "default_execution_fee_tier": self.default_execution_fee_tier,
            },
            "funding": {
                "gas_reserve": str(self.gas_reserve),
                "safety_buffer": str(self.funding_safety_buffer),
                "max_slippage_pct": str(self.default_max_slippage_pct),
            },
        }


def configure_logging(settings: Settings) -> None:
    """Configure root logging for the CLI."""
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

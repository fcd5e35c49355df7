"""Pytest configuration and fixtures."""

import os
from decimal import Decimal

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DRY_RUN"] = "true"
os.environ["AUTO_EXECUTE"] = "false"
os.environ["ONEINCH_API_KEY"] = ""

from swapfund.routing.dry_run import SimulatedPoolQuoter
from swapfund.routing.finder import RouteFinder
from swapfund.services.funding_planner import FundingPlanner
from swapfund.tokens import AssetRef, TokenRegistry

USER = "0x1111111111111111111111111111111111111111"

TEST_TOKENS = {
    "USDC": "0x00000000000000000000000000000000000000c1",
    "DAI": "0x00000000000000000000000000000000000000d1",
    "WETH": "0x0000000000000000000000000000000000000e71",
    "X": "0x00000000000000000000000000000000000000a1",
    "Y": "0x00000000000000000000000000000000000000b1",
    "Z": "0x00000000000000000000000000000000000000f1",
}

TEST_DECIMALS = {
    "USDC": 6,
    "DAI": 18,
    "WETH": 18,
    "X": 6,
    "Y": 18,
    "Z": 18,
}


@pytest.fixture
def registry() -> TokenRegistry:
    """Registry with an ETH native asset and a 6-decimal asset X."""
    return TokenRegistry(TEST_TOKENS, native_asset="ETH", known_decimals=TEST_DECIMALS)


class RecordingPoolQuoter(SimulatedPoolQuoter):
    """Simulated AMM that records every (from, to, tier, amount) query."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: list[tuple[str, str, int, int]] = []

    async def quote_fee_tier(self, source: AssetRef, dest: AssetRef, amount_in: int, fee_tier: int) -> int:
        self.calls.append((source.symbol, dest.symbol, fee_tier, amount_in))
        return await super().quote_fee_tier(source, dest, amount_in, fee_tier)


@pytest.fixture
def pools() -> RecordingPoolQuoter:
    """Empty simulated AMM; tests add the pools they need."""
    return RecordingPoolQuoter()


@pytest.fixture
def pool_finder(registry, pools) -> RouteFinder:
    """Route finder backed by the simulated AMM only."""
    return RouteFinder(registry, pool_quoter=pools, intermediates=("WETH", "DAI", "USDC", "Z"))


@pytest.fixture
def planner(pool_finder, registry) -> FundingPlanner:
    """Planner with the default gas reserve and 1% safety buffer."""
    return FundingPlanner(
        pool_finder,
        registry,
        gas_reserve=Decimal("0.01"),
        safety_buffer=Decimal("0.01"),
    )

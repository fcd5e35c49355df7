"""Deterministic simulated quote providers for dry runs and tests.

No randomness: identical inputs always produce identical quotes.
"""

import logging
from decimal import ROUND_DOWN, Decimal
from typing import Optional

from swapfund.errors import QuoteUnavailable
from swapfund.routing.base import PoolQuoter, Quote, QuoteSource, Route
from swapfund.tokens import AssetRef

logger = logging.getLogger(__name__)


# Simulated USD prices for Base assets. Demonstration values only.
SIMULATED_PRICES: dict[str, Decimal] = {
    # ========== Native / wrapped ==========
    "ETH": Decimal("3000.00"),
    "WETH": Decimal("3000.00"),

    # ========== Stablecoins ==========
    "USDC": Decimal("1.00"),
    "USDBC": Decimal("1.00"),
    "USDT": Decimal("1.00"),
    "DAI": Decimal("1.00"),
    "GHO": Decimal("0.998"),
    "EURC": Decimal("1.08"),

    # ========== Liquid staking tokens ==========
    "CBETH": Decimal("3240.00"),
    "WSTETH": Decimal("3560.00"),
    "WEETH": Decimal("3150.00"),
    "EZETH": Decimal("3100.00"),
    "WRSETH": Decimal("3120.00"),

    # ========== Bitcoin variants ==========
    "CBBTC": Decimal("95000.00"),
    "LBTC": Decimal("94800.00"),

    # ========== Governance ==========
    "AAVE": Decimal("185.00"),
}


def _convert(source: AssetRef, dest: AssetRef, amount_in: int, rate: Decimal) -> int:
    """Apply a human-unit rate to a base-unit amount, truncating."""
    out = source.to_human(amount_in) * rate * (Decimal(10) ** dest.decimals)
    return int(out.to_integral_value(rounding=ROUND_DOWN))


class SimulatedQuoteSource(QuoteSource):
    """Simulated aggregator priced from a USD price table."""

    def __init__(
        self,
        prices: Optional[dict[str, Decimal]] = None,
        fee_bps: Decimal = Decimal("10"),
        available: bool = True,
    ):
        self._prices = {k.upper(): v for k, v in (prices or SIMULATED_PRICES).items()}
        self.fee_bps = fee_bps
        self.available = available

    @property
    def name(self) -> str:
        return "simulated-aggregator"

    def set_price(self, asset: str, price: Decimal) -> None:
        """Set simulated price for an asset."""
        self._prices[asset.upper()] = price

    def get_price(self, asset: str) -> Optional[Decimal]:
        return self._prices.get(asset.upper())

    async def quote(self, source: AssetRef, dest: AssetRef, amount_in: int) -> Quote:
        if not self.available:
            raise QuoteUnavailable(f"{self.name} is unavailable")
        if amount_in <= 0:
            raise QuoteUnavailable(f"{self.name}: amount must be positive")

        from_price = self.get_price(source.symbol)
        to_price = self.get_price(dest.symbol)
        if from_price is None or to_price is None:
            raise QuoteUnavailable(f"{self.name} has no price for {source} -> {dest}")

        rate = from_price / to_price * (1 - self.fee_bps / Decimal(10000))
        amount_out = _convert(source, dest, amount_in, rate)

        return Quote(
            source_asset=source.symbol,
            dest_asset=dest.symbol,
            amount_in=amount_in,
            amount_out=amount_out,
            fee_bps=self.fee_bps,
            price_impact_pct=Decimal("0"),
            route_description=f"{source.symbol} -> {dest.symbol} ({self.name})",
            route=Route.direct(source.symbol, dest.symbol, venue=self.name),
            provider=self.name,
            is_simulated=True,
        )


class SimulatedPoolQuoter(PoolQuoter):
    """Simulated AMM with an explicit pool table.

    Each pool is keyed by (from, to, fee_tier) and holds a net rate in
    human units: 1 unit of `from` yields `rate` units of `to`.
    """

    def __init__(self, pools: Optional[dict[tuple[str, str, int], Decimal]] = None):
        self._pools: dict[tuple[str, str, int], Decimal] = {}
        for (from_asset, to_asset, fee_tier), rate in (pools or {}).items():
            self.add_pool(from_asset, to_asset, fee_tier, rate)

    @property
    def name(self) -> str:
        return "simulated-amm"

    def add_pool(self, from_asset: str, to_asset: str, fee_tier: int, rate: Decimal) -> None:
        self._pools[(from_asset.upper(), to_asset.upper(), fee_tier)] = Decimal(rate)

    def has_pool(self, from_asset: str, to_asset: str, fee_tier: int) -> bool:
        return (from_asset.upper(), to_asset.upper(), fee_tier) in self._pools

    async def quote_fee_tier(self, source: AssetRef, dest: AssetRef, amount_in: int, fee_tier: int) -> int:
        rate = self._pools.get((source.symbol.upper(), dest.symbol.upper(), fee_tier))
        if rate is None:
            raise QuoteUnavailable(f"no pool for {source} -> {dest} at fee tier {fee_tier}")
        if amount_in <= 0:
            raise QuoteUnavailable(f"{self.name}: amount must be positive")
        return _convert(source, dest, amount_in, rate)

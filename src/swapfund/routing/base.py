"""Quote provider port: canonical quote/route types and provider interfaces.

Every liquidity source is wrapped in one of two interfaces:

- `QuoteSource`: prices a whole conversion (e.g. a DEX aggregator)
- `PoolQuoter`: prices a single AMM pool at one fee tier

Adapters do all provider-specific parsing and hand back integer
base-unit amounts; nothing downstream sees a raw provider response.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from swapfund.tokens import AssetRef

logger = logging.getLogger(__name__)

PCT = Decimal("100")


def fee_tier_to_bps(fee_tier: int) -> Decimal:
    """Convert a pool fee tier (hundredths of a bip) to basis points.

    100 -> 1 bps (0.01%), 500 -> 5, 3000 -> 30, 10000 -> 100.
    """
    return Decimal(fee_tier) / Decimal(100)


def effective_rate_impact_pct(source: AssetRef, dest: AssetRef, amount_in: int, amount_out: int) -> Decimal:
    """Simplified price impact: |1 - amount_out / amount_in| in percent.

    Compares human-unit amounts with no spot or reference price, so it
    reflects the unit-price ratio of the pair as much as real impact.
    """
    if amount_in <= 0:
        return Decimal("0")
    rate = dest.to_human(amount_out) / source.to_human(amount_in)
    return abs(1 - rate) * PCT


@dataclass(frozen=True)
class Hop:
    """One asset-to-asset conversion through one venue."""

    from_asset: str
    to_asset: str
    venue: str
    fee_tier: Optional[int] = None

    def describe(self) -> str:
        if self.fee_tier is not None:
            return f"{self.from_asset} -> {self.to_asset} ({fee_tier_to_bps(self.fee_tier) / PCT}% fee)"
        return f"{self.from_asset} -> {self.to_asset} ({self.venue})"


@dataclass(frozen=True)
class Route:
    """Ordered one- or two-hop path from source to destination."""

    hops: tuple[Hop, ...]

    def __post_init__(self):
        if not 1 <= len(self.hops) <= 2:
            raise ValueError(f"Route must have one or two hops, got {len(self.hops)}")
        if len(self.hops) == 2:
            first, second = self.hops
            if first.to_asset != second.from_asset:
                raise ValueError(f"Disconnected hops: {first.to_asset} != {second.from_asset}")
            middle = first.to_asset.upper()
            if middle in (first.from_asset.upper(), second.to_asset.upper()):
                raise ValueError(f"Intermediate {first.to_asset} repeats an endpoint")

    @classmethod
    def direct(cls, from_asset: str, to_asset: str, venue: str, fee_tier: Optional[int] = None) -> "Route":
        return cls(hops=(Hop(from_asset, to_asset, venue, fee_tier),))

    @property
    def source_asset(self) -> str:
        return self.hops[0].from_asset

    @property
    def dest_asset(self) -> str:
        return self.hops[-1].to_asset

    @property
    def is_direct(self) -> bool:
        return len(self.hops) == 1

    @property
    def is_multi_hop(self) -> bool:
        return len(self.hops) == 2

    @property
    def intermediate(self) -> Optional[str]:
        return self.hops[0].to_asset if self.is_multi_hop else None

    @property
    def assets(self) -> list[str]:
        return [self.hops[0].from_asset] + [hop.to_asset for hop in self.hops]

    def execution_fee_tiers(self, default_fee_tier: int) -> list[int]:
        """Pool fee tier per hop; aggregator-priced hops use the configured default."""
        return [hop.fee_tier if hop.fee_tier is not None else default_fee_tier for hop in self.hops]


@dataclass(frozen=True)
class Quote:
    """Canonical swap quote. Amounts are integer base units.

    Fee and price impact are additive across hops.
    """

    source_asset: str
    dest_asset: str
    amount_in: int
    amount_out: int
    fee_bps: Decimal
    price_impact_pct: Decimal
    route_description: str
    route: Route
    provider: str
    is_simulated: bool = False

    def __post_init__(self):
        if self.amount_out < 0:
            raise ValueError(f"Quote amount_out must be >= 0, got {self.amount_out}")

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "provider": self.provider,
            "source_asset": self.source_asset,
            "dest_asset": self.dest_asset,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "fee_bps": str(self.fee_bps),
            "price_impact_pct": str(self.price_impact_pct),
            "route": self.route_description,
            "hops": [hop.describe() for hop in self.route.hops],
            "is_simulated": self.is_simulated,
        }


class QuoteSource(ABC):
    """A liquidity source that prices a whole conversion."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        pass

    @abstractmethod
    async def quote(self, source: AssetRef, dest: AssetRef, amount_in: int) -> Quote:
        """
        Price `amount_in` base units of `source` in `dest`.

        Raises:
            QuoteUnavailable: no liquidity, network/timeout error or malformed response
        """
        pass


class PoolQuoter(ABC):
    """An AMM venue quoted one pool (fee tier) at a time."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Venue name identifier."""
        pass

    @abstractmethod
    async def quote_fee_tier(self, source: AssetRef, dest: AssetRef, amount_in: int, fee_tier: int) -> int:
        """
        Output amount (base units) of the pool at `fee_tier`.

        Raises:
            QuoteUnavailable: pool absent or call failed
        """
        pass

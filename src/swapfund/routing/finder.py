"""Route selection across the aggregator and AMM pools.

Strategies run in order and the first that yields a quote wins:

1. Aggregator quote (used as-is when the aggregator is the default source)
2. Best direct pool over the configured fee tiers
3. Best two-hop path through a configured intermediate asset

All comparisons are on integer base-unit outputs.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from swapfund.errors import NoRouteFound, QuoteUnavailable, UnknownAsset
from swapfund.routing.base import (
    PoolQuoter,
    Quote,
    QuoteSource,
    Route,
    effective_rate_impact_pct,
    fee_tier_to_bps,
)
from swapfund.tokens import AssetRef, TokenRegistry

logger = logging.getLogger(__name__)


class RouteFinder:
    """Selects the best available route for a conversion."""

    def __init__(
        self,
        registry: TokenRegistry,
        aggregator: Optional[QuoteSource] = None,
        pool_quoter: Optional[PoolQuoter] = None,
        fee_tiers: Iterable[int] = (100, 500, 3000, 10000),
        intermediates: Iterable[str] = ("WETH", "DAI", "USDC"),
        aggregator_is_default: bool = True,
    ):
        """Initialize route finder.

        Args:
            registry: Token registry used to resolve symbols
            aggregator: Primary quote source (e.g. 1inch)
            pool_quoter: AMM quoter used for direct and multi-hop fallbacks
            fee_tiers: Pool fee tiers; tried lowest first so ties go to the cheapest tier
            intermediates: Candidate middle assets for two-hop routes, in preference order
            aggregator_is_default: Use an aggregator quote without comparing pools
        """
        if aggregator is None and pool_quoter is None:
            raise ValueError("RouteFinder needs at least one quote provider")

        self.registry = registry
        self.aggregator = aggregator
        self.pool_quoter = pool_quoter
        self.fee_tiers: list[int] = sorted(set(fee_tiers))
        self.intermediates: list[str] = list(intermediates)
        self.aggregator_is_default = aggregator_is_default

    async def find_route(self, source_asset: str, dest_asset: str, amount_in: int) -> Quote:
        """
        Find the best route for `amount_in` base units of `source_asset`.

        Raises:
            NoRouteFound: when every strategy fails
            UnknownAsset: when source or destination is not registered
            ValueError: on a non-positive amount or identical assets
        """
        if amount_in <= 0:
            raise ValueError(f"amount_in must be positive, got {amount_in}")

        source = await self.registry.resolve(source_asset)
        dest = await self.registry.resolve(dest_asset)
        if source.symbol == dest.symbol:
            raise ValueError(f"Cannot route {source} to itself")

        logger.info(f"Finding route: {amount_in} {source} -> {dest}")

        aggregated = await self._aggregator_quote(source, dest, amount_in)
        if aggregated is not None and self.aggregator_is_default:
            logger.info(f"Using aggregator quote: {aggregated.route_description} -> {aggregated.amount_out}")
            return aggregated

        direct = await self.best_direct_quote(source, dest, amount_in)
        if aggregated is not None:
            # Pool wins ties: its fee tier is known for execution
            if direct is None or aggregated.amount_out > direct.amount_out:
                logger.info(f"Aggregator beats direct pools: {aggregated.amount_out} {dest}")
                return aggregated
        if direct is not None:
            logger.info(f"Selected direct route: {direct.route_description} -> {direct.amount_out}")
            return direct

        logger.info(f"No direct route for {source} -> {dest}, trying multi-hop...")
        multi_hop = await self.best_multi_hop_quote(source, dest, amount_in)
        if multi_hop is not None:
            logger.info(f"Found multi-hop route: {multi_hop.route_description} -> {multi_hop.amount_out}")
            return multi_hop

        logger.warning(f"No route found for {amount_in} {source} -> {dest}")
        raise NoRouteFound(source.symbol, dest.symbol)

    async def _aggregator_quote(self, source: AssetRef, dest: AssetRef, amount_in: int) -> Optional[Quote]:
        if self.aggregator is None:
            return None
        try:
            return await self.aggregator.quote(source, dest, amount_in)
        except QuoteUnavailable as e:
            logger.warning(f"{self.aggregator.name} quote failed for {source} -> {dest}: {e.message}")
            return None

    async def best_direct_quote(self, source: AssetRef, dest: AssetRef, amount_in: int) -> Optional[Quote]:
        """Best single-pool quote across fee tiers, or None if no pool prices the pair."""
        if self.pool_quoter is None:
            return None

        best_out = 0
        best_tier: Optional[int] = None
        for fee_tier in self.fee_tiers:
            try:
                amount_out = await self.pool_quoter.quote_fee_tier(source, dest, amount_in, fee_tier)
            except QuoteUnavailable as e:
                logger.debug(f"{source} -> {dest} @ {fee_tier}: {e.message}")
                continue

            if amount_out <= 0:
                logger.debug(f"{source} -> {dest} @ {fee_tier}: zero output, skipping")
                continue
            # Strictly greater: on a tie the earlier (lower) tier stays selected
            if amount_out > best_out:
                best_out = amount_out
                best_tier = fee_tier

        if best_tier is None:
            return None

        route = Route.direct(source.symbol, dest.symbol, venue=self.pool_quoter.name, fee_tier=best_tier)
        return Quote(
            source_asset=source.symbol,
            dest_asset=dest.symbol,
            amount_in=amount_in,
            amount_out=best_out,
            fee_bps=fee_tier_to_bps(best_tier),
            price_impact_pct=effective_rate_impact_pct(source, dest, amount_in, best_out),
            route_description=route.hops[0].describe(),
            route=route,
            provider=self.pool_quoter.name,
        )

    async def best_multi_hop_quote(self, source: AssetRef, dest: AssetRef, amount_in: int) -> Optional[Quote]:
        """Best two-hop quote through any configured intermediate."""
        if self.pool_quoter is None:
            return None

        best: Optional[Quote] = None
        for symbol in self.intermediates:
            if symbol.upper() in (source.symbol.upper(), dest.symbol.upper()):
                continue
            try:
                middle = await self.registry.resolve(symbol)
            except UnknownAsset:
                logger.debug(f"Intermediate {symbol} is not registered, skipping")
                continue

            first = await self.best_direct_quote(source, middle, amount_in)
            if first is None:
                continue
            second = await self.best_direct_quote(middle, dest, first.amount_out)
            if second is None:
                continue

            candidate = self._combine(first, second)
            logger.debug(f"Multi-hop via {middle}: {candidate.amount_out} {dest}")
            if best is None or candidate.amount_out > best.amount_out:
                best = candidate

        return best

    @staticmethod
    def _combine(first: Quote, second: Quote) -> Quote:
        route = Route(hops=first.route.hops + second.route.hops)
        fee_bps = first.fee_bps + second.fee_bps
        return Quote(
            source_asset=first.source_asset,
            dest_asset=second.dest_asset,
            amount_in=first.amount_in,
            amount_out=second.amount_out,
            fee_bps=fee_bps,
            price_impact_pct=first.price_impact_pct + second.price_impact_pct,
            route_description=(
                f"{first.source_asset} -> {first.dest_asset} -> {second.dest_asset} "
                f"({fee_bps / Decimal(100)}% total fee)"
            ),
            route=route,
            provider=first.provider,
            is_simulated=first.is_simulated or second.is_simulated,
        )

    async def quote_route(self, route: Route, amount_in: int) -> Quote:
        """
        Re-price a fixed route hop by hop for a new input amount.

        Raises:
            QuoteUnavailable: when a hop's venue can no longer price it
        """
        if amount_in <= 0:
            raise ValueError(f"amount_in must be positive, got {amount_in}")

        legs: list[Quote] = []
        leg_amount = amount_in
        for hop in route.hops:
            source = await self.registry.resolve(hop.from_asset)
            dest = await self.registry.resolve(hop.to_asset)

            if hop.fee_tier is None:
                if self.aggregator is None:
                    raise QuoteUnavailable(f"No aggregator configured to price {hop.describe()}")
                leg = await self.aggregator.quote(source, dest, leg_amount)
            else:
                if self.pool_quoter is None:
                    raise QuoteUnavailable(f"No pool quoter configured to price {hop.describe()}")
                amount_out = await self.pool_quoter.quote_fee_tier(source, dest, leg_amount, hop.fee_tier)
                single = Route(hops=(hop,))
                leg = Quote(
                    source_asset=source.symbol,
                    dest_asset=dest.symbol,
                    amount_in=leg_amount,
                    amount_out=amount_out,
                    fee_bps=fee_tier_to_bps(hop.fee_tier),
                    price_impact_pct=effective_rate_impact_pct(source, dest, leg_amount, amount_out),
                    route_description=hop.describe(),
                    route=single,
                    provider=self.pool_quoter.name,
                )
            legs.append(leg)
            leg_amount = leg.amount_out

        if len(legs) == 1:
            return legs[0]
        return self._combine(legs[0], legs[1])

"""Routing module for swap quote selection.

Providers:
- 1inch: DEX aggregator, used as a single opaque hop
- Uniswap V3: direct pool quotes per fee tier (Base)
- Simulated: deterministic providers for dry runs and tests
"""

from swapfund.routing.base import Hop, PoolQuoter, Quote, QuoteSource, Route
from swapfund.routing.dry_run import SimulatedPoolQuoter, SimulatedQuoteSource
from swapfund.routing.factory import (
    create_aggregator_source,
    create_pool_quoter,
    create_route_finder,
    create_token_registry,
)
from swapfund.routing.finder import RouteFinder

__all__ = [
    # Base classes
    "Hop",
    "Route",
    "Quote",
    "QuoteSource",
    "PoolQuoter",
    # Route selection
    "RouteFinder",
    # Providers
    "SimulatedQuoteSource",
    "SimulatedPoolQuoter",
    # Factory functions
    "create_aggregator_source",
    "create_pool_quoter",
    "create_route_finder",
    "create_token_registry",
]

"""Factory for creating quote providers and the route finder.

Creates real providers when dry run is off. Simulated providers are
only installed in dry run.
"""

import logging
from typing import Optional

from swapfund.config import Settings, get_settings
from swapfund.routing.base import PoolQuoter, QuoteSource
from swapfund.routing.finder import RouteFinder
from swapfund.tokens import DecimalsCache, TokenRegistry

logger = logging.getLogger(__name__)


def create_token_registry(settings: Optional[Settings] = None, cache: Optional[DecimalsCache] = None) -> TokenRegistry:
    """Create the token registry.

    Outside dry run, unknown decimals are read on-chain through web3.
    """
    settings = settings or get_settings()

    decimals_reader = None
    if not settings.dry_run:
        from swapfund.chain import ChainReader
        decimals_reader = ChainReader(settings.rpc_url).decimals

    return TokenRegistry(
        tokens=settings.tokens,
        native_asset=settings.native_asset,
        cache=cache,
        decimals_reader=decimals_reader,
        known_decimals=settings.known_decimals,
    )


def create_aggregator_source(settings: Optional[Settings] = None) -> Optional[QuoteSource]:
    """Create the 1inch aggregator quote source.

    Dry run always gets the simulated aggregator. Outside dry run 1inch
    requires an API key; without one there is no aggregator and routing
    goes straight to the pools.
    """
    settings = settings or get_settings()

    if settings.has_aggregator_credentials and not settings.dry_run:
        try:
            from swapfund.routing.oneinch import OneInchQuoteSource
            return OneInchQuoteSource(
                api_url=settings.oneinch_api_url,
                api_key=settings.oneinch_api_key,
                chain_id=settings.chain_id,
                fee_bps=settings.aggregator_fee_bps,
                timeout=settings.http_timeout_seconds,
            )
        except Exception as e:
            logger.warning(f"Failed to create real 1inch quote source: {e}")

    if not settings.dry_run:
        logger.info("No 1inch aggregator configured, routing through pools only")
        return None

    from swapfund.routing.dry_run import SimulatedQuoteSource
    return SimulatedQuoteSource(fee_bps=settings.aggregator_fee_bps)


def create_pool_quoter(settings: Optional[Settings] = None) -> Optional[PoolQuoter]:
    """Create the Uniswap V3 pool quoter.

    Returns None in dry run: the simulated aggregator prices every pair
    on its own.
    """
    settings = settings or get_settings()

    if settings.dry_run:
        return None

    try:
        from swapfund.routing.uniswap_v3 import UniswapV3PoolQuoter
        return UniswapV3PoolQuoter(
            rpc_url=settings.rpc_url,
            quoter_address=settings.uniswap_quoter_address,
            wrapped_native_address=settings.tokens[settings.wrapped_native_asset],
        )
    except Exception as e:
        logger.warning(f"Failed to create Uniswap V3 quoter: {e}")
        return None


def create_route_finder(
    settings: Optional[Settings] = None,
    registry: Optional[TokenRegistry] = None,
) -> RouteFinder:
    """Create a route finder with all configured providers."""
    settings = settings or get_settings()
    registry = registry or create_token_registry(settings)

    aggregator = create_aggregator_source(settings)
    pool_quoter = create_pool_quoter(settings)

    logger.info(
        f"Route finder: aggregator={aggregator.name if aggregator else 'none'}, "
        f"pools={pool_quoter.name if pool_quoter else 'none'}, "
        f"tiers={settings.fee_tiers}, intermediates={settings.intermediate_assets}"
    )
    return RouteFinder(
        registry=registry,
        aggregator=aggregator,
        pool_quoter=pool_quoter,
        fee_tiers=settings.fee_tiers,
        intermediates=settings.intermediate_assets,
        aggregator_is_default=settings.aggregator_is_default,
    )

"""Token registry and decimals cache.

The registry maps symbols to `AssetRef` values. Decimals are read once
per address and kept in an explicit `DecimalsCache` that callers share
by passing it in, rather than through module globals.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Awaitable, Callable, Optional

from swapfund.errors import UnknownAsset

logger = logging.getLogger(__name__)

# 1inch and most aggregators use this placeholder for the native asset
NATIVE_ASSET_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

DEFAULT_DECIMALS = 18


@dataclass(frozen=True)
class AssetRef:
    """Resolved token: symbol, contract address and decimal precision."""

    symbol: str
    address: str
    decimals: int
    is_native: bool = False

    def to_base_units(self, amount: Decimal) -> int:
        """Convert a human-readable amount to integer base units (truncating)."""
        scaled = (Decimal(amount) * (Decimal(10) ** self.decimals)).to_integral_value(rounding=ROUND_DOWN)
        return int(scaled)

    def to_human(self, amount: int) -> Decimal:
        """Convert integer base units to a human-readable Decimal."""
        return Decimal(amount) / (Decimal(10) ** self.decimals)

    def __str__(self) -> str:
        return self.symbol


class DecimalsCache:
    """Append-only address -> decimals cache.

    Concurrent readers are safe; two writers racing on the same address
    both store the same on-chain value, so last write wins.
    """

    def __init__(self, preload: Optional[dict[str, int]] = None):
        self._decimals: dict[str, int] = {}
        if preload:
            for address, decimals in preload.items():
                self.set(address, decimals)

    def get(self, address: str) -> Optional[int]:
        return self._decimals.get(address.lower())

    def set(self, address: str, decimals: int) -> None:
        self._decimals[address.lower()] = decimals

    def __contains__(self, address: str) -> bool:
        return address.lower() in self._decimals

    def __len__(self) -> int:
        return len(self._decimals)


DecimalsReader = Callable[[str], Awaitable[int]]


class TokenRegistry:
    """Resolves asset symbols to `AssetRef` values."""

    def __init__(
        self,
        tokens: dict[str, str],
        native_asset: str = "ETH",
        cache: Optional[DecimalsCache] = None,
        decimals_reader: Optional[DecimalsReader] = None,
        known_decimals: Optional[dict[str, int]] = None,
    ):
        """Initialize registry.

        Args:
            tokens: Symbol -> contract address (native asset may be omitted)
            native_asset: Native gas asset symbol (e.g. "ETH")
            cache: Shared decimals cache
            decimals_reader: Async on-chain decimals lookup used on cache miss
            known_decimals: Symbol -> decimals, preloaded into the cache
        """
        self.native_asset = native_asset
        self.cache = cache if cache is not None else DecimalsCache()
        self._decimals_reader = decimals_reader

        self._addresses: dict[str, str] = {native_asset.upper(): NATIVE_ASSET_ADDRESS}
        self._symbols: dict[str, str] = {native_asset.upper(): native_asset}
        for symbol, address in tokens.items():
            self._addresses[symbol.upper()] = address
            self._symbols[symbol.upper()] = symbol

        self.cache.set(NATIVE_ASSET_ADDRESS, DEFAULT_DECIMALS)
        for symbol, decimals in (known_decimals or {}).items():
            address = self._addresses.get(symbol.upper())
            if address and address != NATIVE_ASSET_ADDRESS:
                self.cache.set(address, decimals)

        logger.debug(f"Token registry loaded {len(self._addresses)} assets, {len(self.cache)} cached decimals")

    def symbols(self) -> list[str]:
        """Canonical symbols of all known assets."""
        return list(self._symbols.values())

    def is_known(self, symbol: str) -> bool:
        return symbol.upper() in self._addresses

    def is_native(self, symbol: str) -> bool:
        return symbol.upper() == self.native_asset.upper()

    def canonical(self, symbol: str) -> str:
        """Registry spelling of a symbol (e.g. "cbeth" -> "cbETH")."""
        try:
            return self._symbols[symbol.upper()]
        except KeyError:
            raise UnknownAsset(symbol) from None

    def address_of(self, symbol: str) -> str:
        try:
            return self._addresses[symbol.upper()]
        except KeyError:
            raise UnknownAsset(symbol) from None

    async def resolve(self, symbol: str) -> AssetRef:
        """Resolve a symbol, reading decimals on first use."""
        address = self.address_of(symbol)
        canonical = self.canonical(symbol)
        decimals = await self._decimals(address)
        return AssetRef(
            symbol=canonical,
            address=address,
            decimals=decimals,
            is_native=self.is_native(symbol),
        )

    async def _decimals(self, address: str) -> int:
        cached = self.cache.get(address)
        if cached is not None:
            return cached

        if self._decimals_reader is None:
            logger.warning(f"No decimals known for {address}, defaulting to {DEFAULT_DECIMALS}")
            return DEFAULT_DECIMALS

        try:
            decimals = await self._decimals_reader(address)
        except Exception as e:
            # Not cached, so a later lookup retries the read
            logger.warning(f"Failed to read decimals for {address}: {e}; defaulting to {DEFAULT_DECIMALS}")
            return DEFAULT_DECIMALS

        self.cache.set(address, decimals)
        logger.debug(f"Cached decimals for {address}: {decimals}")
        return decimals

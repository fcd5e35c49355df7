"""In-memory balance reader for dry runs and tests."""

import logging
from decimal import Decimal
from typing import Optional

from swapfund.services.ports import BalanceReader, BalanceSnapshot
from swapfund.tokens import TokenRegistry

logger = logging.getLogger(__name__)


class StaticBalanceReader(BalanceReader):
    """Serves balances from a fixed per-address table (base units)."""

    def __init__(self, balances: Optional[dict[str, dict[str, int]]] = None):
        self._balances: dict[str, dict[str, int]] = {
            address.lower(): dict(held) for address, held in (balances or {}).items()
        }

    @classmethod
    async def from_human(
        cls,
        registry: TokenRegistry,
        user_address: str,
        balances: dict[str, Decimal],
    ) -> "StaticBalanceReader":
        """Build a reader from human-readable amounts."""
        held: dict[str, int] = {}
        for symbol, amount in balances.items():
            asset = await registry.resolve(symbol)
            held[asset.symbol] = asset.to_base_units(amount)
        return cls({user_address: held})

    def set_balance(self, user_address: str, asset: str, amount: int) -> None:
        self._balances.setdefault(user_address.lower(), {})[asset] = amount

    async def snapshot(self, user_address: str) -> BalanceSnapshot:
        held = self._balances.get(user_address.lower(), {})
        logger.debug(f"Static balances for {user_address}: {held}")
        return BalanceSnapshot(user_address=user_address, balances=held)

    async def balance_of(self, user_address: str, asset: str) -> int:
        snapshot = await self.snapshot(user_address)
        return snapshot.get(asset)

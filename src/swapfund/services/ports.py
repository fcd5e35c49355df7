"""Collaborator contracts consumed by the funding and workflow services.

Chain reads, approvals, swap submission and deposits all happen behind
these interfaces. Signing, nonce assignment and ABI encoding belong to
the implementations, never to the core.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from swapfund.config import ExecutionMode
from swapfund.routing.base import Route


@dataclass(frozen=True)
class BalanceSnapshot:
    """Balances (base units) of one address at one point in time.

    Read-only and possibly stale: execution re-validates before acting.
    """

    user_address: str
    balances: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "balances", MappingProxyType(dict(self.balances)))

    def get(self, asset: str) -> int:
        """Balance of `asset` (case-insensitive), 0 if absent."""
        if asset in self.balances:
            return self.balances[asset]
        upper = asset.upper()
        for symbol, amount in self.balances.items():
            if symbol.upper() == upper:
                return amount
        return 0

    def held_assets(self) -> list[str]:
        """Assets with a positive balance, in snapshot order."""
        return [symbol for symbol, amount in self.balances.items() if amount > 0]

    def to_dict(self) -> dict:
        return {
            "user_address": self.user_address,
            "balances": {symbol: str(amount) for symbol, amount in self.balances.items()},
        }


@dataclass(frozen=True)
class TxReceipt:
    """Confirmed transaction outcome."""

    tx_hash: str
    success: bool = True
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    amount_out: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class DepositReceipt:
    """Confirmed deposit outcome."""

    tx_hash: str
    asset: str
    amount: int
    success: bool = True
    extra: dict[str, Any] = field(default_factory=dict)


class BalanceReader(ABC):
    """Reads user balances."""

    @abstractmethod
    async def snapshot(self, user_address: str) -> BalanceSnapshot:
        """Balances across all known assets."""
        pass

    @abstractmethod
    async def balance_of(self, user_address: str, asset: str) -> int:
        """Fresh balance of a single asset."""
        pass


class AllowanceManager(ABC):
    """ERC20 allowance reads and approvals."""

    @abstractmethod
    async def allowance(self, asset: str, owner: str, spender: str) -> int:
        pass

    @abstractmethod
    async def approve(self, asset: str, spender: str, amount: int, owner: str) -> TxReceipt:
        """Submit an approval signed for `owner` and wait for confirmation."""
        pass


class SwapSubmitter(ABC):
    """Submits swap transactions."""

    @abstractmethod
    def spender_for(self, route: Route) -> str:
        """Contract that needs allowance to execute `route`."""
        pass

    @abstractmethod
    async def submit(
        self,
        route: Route,
        fee_tiers: list[int],
        amount_in: int,
        amount_out_min: int,
        user_address: str,
    ) -> TxReceipt:
        """Submit the swap and wait for confirmation.

        `fee_tiers` holds the pool fee tier to execute each hop of `route`
        through, aggregator-priced hops included.
        """
        pass


class DepositSink(ABC):
    """Lending-pool deposit (supply) collaborator."""

    @abstractmethod
    async def deposit(self, asset: str, amount: int, user_address: str) -> DepositReceipt:
        pass


class ExecutionModeFlag(ABC):
    """Global simulation / live toggle."""

    @abstractmethod
    def is_live(self) -> bool:
        pass

    @property
    def mode(self) -> ExecutionMode:
        return ExecutionMode.LIVE if self.is_live() else ExecutionMode.SIMULATION


class StaticExecutionMode(ExecutionModeFlag):
    """Fixed mode, typically taken from `Settings.auto_execute`."""

    def __init__(self, live: bool = False):
        self.live = live

    def is_live(self) -> bool:
        return self.live

"""Error taxonomy and the Ok/Err result type.

Quote ports raise `QuoteUnavailable` and the route finder raises
`NoRouteFound`. Everything from the swap executor upward returns a
`Result` so the workflow coordinator can branch on `ErrorKind`
instead of catching arbitrary exceptions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Kinds of failure surfaced by the routing and funding core."""

    QUOTE_UNAVAILABLE = "quote_unavailable"
    NO_ROUTE_FOUND = "no_route_found"
    NO_FUNDING_PATH = "no_funding_path"
    INSUFFICIENT_BALANCE_ABSOLUTE = "insufficient_balance_absolute"
    SWAP_FAILED = "swap_failed"
    DEPOSIT_FAILED = "deposit_failed"
    UNKNOWN_ASSET = "unknown_asset"
    BALANCE_UNAVAILABLE = "balance_unavailable"
    AMOUNT_BELOW_PRECISION = "amount_below_precision"


class SwapfundError(Exception):
    """Base error: kind + human-readable message + originating stage."""

    kind: ErrorKind = ErrorKind.SWAP_FAILED

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.stage = stage
        self.details = details or {}
        super().__init__(message)

    def at_stage(self, stage: str) -> "SwapfundError":
        """Attach the stage that failed (first one wins)."""
        if self.stage is None:
            self.stage = stage
        return self

    def to_dict(self) -> dict:
        data = {
            "kind": self.kind.value,
            "message": self.message,
            "stage": self.stage,
        }
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, stage={self.stage!r})"


class QuoteUnavailable(SwapfundError):
    """A single provider could not price a pair."""

    kind = ErrorKind.QUOTE_UNAVAILABLE


class NoRouteFound(SwapfundError):
    """No routing strategy produced a quote."""

    kind = ErrorKind.NO_ROUTE_FOUND

    def __init__(self, source_asset: str, dest_asset: str, stage: Optional[str] = None):
        self.source_asset = source_asset
        self.dest_asset = dest_asset
        super().__init__(
            f"No route found for {source_asset} -> {dest_asset} "
            f"(tried aggregator, direct pools and multi-hop)",
            stage=stage,
            details={"source_asset": source_asset, "dest_asset": dest_asset},
        )


class NoFundingPath(SwapfundError):
    """No held asset can cover the shortfall."""

    kind = ErrorKind.NO_FUNDING_PATH


class InsufficientBalanceAbsolute(SwapfundError):
    """A funding source priced the shortfall but cannot afford it."""

    kind = ErrorKind.INSUFFICIENT_BALANCE_ABSOLUTE


class SwapFailed(SwapfundError):
    """Execution-time swap failure (revert, approval, balance)."""

    kind = ErrorKind.SWAP_FAILED

    def __init__(self, reason: str, stage: Optional[str] = None, details: Optional[dict] = None):
        self.reason = reason
        super().__init__(f"Swap failed: {reason}", stage=stage, details=details)


class DepositFailed(SwapfundError):
    """Deposit collaborator rejected or reverted."""

    kind = ErrorKind.DEPOSIT_FAILED

    def __init__(self, reason: str, stage: Optional[str] = None, details: Optional[dict] = None):
        self.reason = reason
        super().__init__(f"Deposit failed: {reason}", stage=stage, details=details)


class UnknownAsset(SwapfundError):
    """Symbol is not in the token registry."""

    kind = ErrorKind.UNKNOWN_ASSET

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Unknown asset: {symbol}", details={"symbol": symbol})


class BalanceUnavailable(SwapfundError):
    """Balance snapshot could not be read."""

    kind = ErrorKind.BALANCE_UNAVAILABLE


class AmountBelowPrecision(SwapfundError):
    """Requested amount is smaller than one base unit of the asset."""

    kind = ErrorKind.AMOUNT_BELOW_PRECISION


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying a structured error."""

    error: SwapfundError

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


Result = Union[Ok[T], Err]

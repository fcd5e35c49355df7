"""Funding planner: covers a balance shortfall from the user's other holdings.

Candidates are tried in priority order (native asset, then the
stablecoin / LST list, then anything else held). Each is priced twice:

1. a rough rate from a quote at the candidate's full available balance
2. a precise quote at the estimated source amount (shortfall / rate,
   plus a safety buffer)

A candidate qualifies only when the precise quote covers the shortfall.
The cheapest qualifying candidate wins. Candidates are evaluated
independently; combining several sources is not attempted.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from swapfund.errors import NoRouteFound, QuoteUnavailable, UnknownAsset
from swapfund.routing.base import Quote
from swapfund.routing.finder import RouteFinder
from swapfund.services.ports import BalanceSnapshot
from swapfund.tokens import TokenRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FundingCandidate:
    """A source asset able to cover the shortfall."""

    asset: str
    source_amount: int
    expected_output: int
    normalized_amount: Decimal
    quote: Quote


@dataclass(frozen=True)
class FundingPlan:
    """Outcome of funding planning for one workflow invocation."""

    required_asset: str
    required_amount: int
    sufficient_already: bool
    shortfall: int
    source_asset: Optional[str] = None
    source_amount: Optional[int] = None
    expected_output: Optional[int] = None
    quote: Optional[Quote] = None
    # True when some candidate priced the shortfall but could not afford it
    blocked_by_balance: bool = False
    candidates_tried: tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_funding_path(self) -> bool:
        return self.source_asset is not None

    def to_dict(self) -> dict:
        data = {
            "required_asset": self.required_asset,
            "required_amount": str(self.required_amount),
            "sufficient_already": self.sufficient_already,
            "shortfall": str(self.shortfall),
            "candidates_tried": list(self.candidates_tried),
        }
        if self.has_funding_path:
            data.update({
                "source_asset": self.source_asset,
                "source_amount": str(self.source_amount),
                "expected_output": str(self.expected_output),
                "route": self.quote.route_description if self.quote else None,
            })
        return data


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


class FundingPlanner:
    """Finds the cheapest held asset that covers a shortfall."""

    def __init__(
        self,
        route_finder: RouteFinder,
        registry: TokenRegistry,
        priority_assets: Iterable[str] = (),
        gas_reserve: Decimal = Decimal("0.01"),
        safety_buffer: Decimal = Decimal("0.01"),
    ):
        """Initialize planner.

        Args:
            route_finder: Used for both quoting passes
            registry: Resolves decimals for gas reserve and cost comparison
            priority_assets: Candidates tried right after the native asset
            gas_reserve: Native asset (human units) never offered as funding
            safety_buffer: Fractional over-estimate of the source amount (0.01 = 1%)
        """
        self.route_finder = route_finder
        self.registry = registry
        self.priority_assets = list(priority_assets)
        self.gas_reserve = gas_reserve
        self.safety_buffer = safety_buffer
        self._buffer_num, self._buffer_den = (1 + safety_buffer).as_integer_ratio()

    async def plan(self, required_asset: str, required_amount: int, balances: BalanceSnapshot) -> FundingPlan:
        """Plan how to hold `required_amount` base units of `required_asset`."""
        held = balances.get(required_asset)
        if held >= required_amount:
            logger.info(f"Sufficient {required_asset} balance: {held} >= {required_amount}")
            return FundingPlan(
                required_asset=required_asset,
                required_amount=required_amount,
                sufficient_already=True,
                shortfall=0,
            )

        shortfall = required_amount - held
        logger.info(f"Shortfall detected: need {shortfall} more {required_asset} (have {held})")

        candidates = await self.candidate_balances(required_asset, balances)
        accepted: list[FundingCandidate] = []
        blocked_by_balance = False

        for asset, available in candidates:
            candidate, blocked = await self._evaluate(asset, available, required_asset, shortfall)
            blocked_by_balance = blocked_by_balance or blocked
            if candidate is not None:
                accepted.append(candidate)

        tried = tuple(asset for asset, _ in candidates)
        if not accepted:
            logger.warning(
                f"No funding path for {shortfall} {required_asset} "
                f"(tried {', '.join(tried) or 'nothing'})"
            )
            return FundingPlan(
                required_asset=required_asset,
                required_amount=required_amount,
                sufficient_already=False,
                shortfall=shortfall,
                blocked_by_balance=blocked_by_balance,
                candidates_tried=tried,
            )

        # min() keeps the first of equal-cost candidates, i.e. the higher-priority one
        best = min(accepted, key=lambda c: c.normalized_amount)
        logger.info(
            f"Funding plan: {best.source_amount} {best.asset} -> "
            f"{best.expected_output} {required_asset} via {best.quote.route_description}"
        )
        return FundingPlan(
            required_asset=required_asset,
            required_amount=required_amount,
            sufficient_already=False,
            shortfall=shortfall,
            source_asset=best.asset,
            source_amount=best.source_amount,
            expected_output=best.expected_output,
            quote=best.quote,
            blocked_by_balance=blocked_by_balance,
            candidates_tried=tried,
        )

    async def candidate_balances(self, required_asset: str, balances: BalanceSnapshot) -> list[tuple[str, int]]:
        """Ordered (asset, spendable amount) pairs, excluding the required asset."""
        native = self.registry.native_asset
        ordered = [native] + self.priority_assets + balances.held_assets()

        seen = {required_asset.upper()}
        candidates: list[tuple[str, int]] = []
        for asset in ordered:
            if asset.upper() in seen:
                continue
            seen.add(asset.upper())

            available = balances.get(asset)
            if self.registry.is_native(asset) and available > 0:
                native_ref = await self.registry.resolve(asset)
                available -= native_ref.to_base_units(self.gas_reserve)
            if available <= 0:
                continue
            candidates.append((asset, available))
        return candidates

    def estimate_source_amount(self, shortfall: int, rough: Quote) -> int:
        """shortfall / rate * (1 + buffer), rounded up, in exact integer math."""
        return _ceil_div(
            shortfall * rough.amount_in * self._buffer_num,
            rough.amount_out * self._buffer_den,
        )

    async def _evaluate(
        self,
        asset: str,
        available: int,
        required_asset: str,
        shortfall: int,
    ) -> tuple[Optional[FundingCandidate], bool]:
        """Two-pass pricing of one candidate. Returns (candidate, blocked_by_balance)."""
        try:
            rough = await self.route_finder.find_route(asset, required_asset, available)
        except (NoRouteFound, QuoteUnavailable, UnknownAsset) as e:
            logger.debug(f"Rate check failed for {asset} -> {required_asset}: {e.message}")
            return None, False

        if rough.amount_out <= 0:
            logger.debug(f"{asset} -> {required_asset} priced at zero, skipping")
            return None, False

        estimate = self.estimate_source_amount(shortfall, rough)
        if estimate > available:
            logger.debug(f"{asset}: need ~{estimate} but only {available} available")
            return None, True

        try:
            precise = await self.route_finder.find_route(asset, required_asset, estimate)
        except (NoRouteFound, QuoteUnavailable, UnknownAsset) as e:
            logger.debug(f"Precise quote failed for {estimate} {asset} -> {required_asset}: {e.message}")
            return None, False

        if precise.amount_out < shortfall:
            logger.debug(
                f"{asset}: {estimate} yields {precise.amount_out} {required_asset}, short of {shortfall}"
            )
            return None, False

        source = await self.registry.resolve(asset)
        logger.debug(f"Candidate {asset}: {estimate} -> {precise.amount_out} {required_asset}")
        return FundingCandidate(
            asset=source.symbol,
            source_amount=estimate,
            expected_output=precise.amount_out,
            normalized_amount=source.to_human(estimate),
            quote=precise,
        ), False

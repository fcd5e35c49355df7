"""Swap execution for a selected route.

Simulation mode returns the projected quote and touches nothing that
changes state. Live mode runs a strict sequence:

    balance re-check -> allowance check -> approve + confirm -> submit + confirm

Approval must be confirmed before submission, otherwise the swap
reverts on insufficient allowance.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from swapfund.config import ExecutionMode
from swapfund.errors import Err, Ok, Result, SwapFailed, SwapfundError
from swapfund.routing.base import Quote
from swapfund.routing.finder import RouteFinder
from swapfund.services.ports import AllowanceManager, BalanceReader, SwapSubmitter
from swapfund.tokens import TokenRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapResult:
    """Canonical result of one swap stage."""

    source_asset: str
    dest_asset: str
    amount_in: int
    amount_out: int
    amount_out_minimum: int
    route_description: str
    quote: Quote
    simulated: bool
    tx_hash: Optional[str] = None
    approval_tx_hash: Optional[str] = None
    block_number: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "source_asset": self.source_asset,
            "dest_asset": self.dest_asset,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "amount_out_minimum": str(self.amount_out_minimum),
            "route": self.route_description,
            "fee_bps": str(self.quote.fee_bps),
            "price_impact_pct": str(self.quote.price_impact_pct),
            "simulated": self.simulated,
            "tx_hash": self.tx_hash,
            "approval_tx_hash": self.approval_tx_hash,
            "block_number": self.block_number,
        }


def minimum_output(amount_out: int, max_slippage_pct: Decimal) -> int:
    """floor(amount_out * (100 - slippage) / 100), in exact integer math."""
    numerator, denominator = (Decimal(100) - Decimal(max_slippage_pct)).as_integer_ratio()
    return amount_out * numerator // (denominator * 100)


class SwapExecutor:
    """Executes (or simulates) a swap along a selected route."""

    def __init__(
        self,
        route_finder: RouteFinder,
        registry: TokenRegistry,
        allowance_manager: Optional[AllowanceManager] = None,
        swap_submitter: Optional[SwapSubmitter] = None,
        balance_reader: Optional[BalanceReader] = None,
        default_fee_tier: int = 3000,
    ):
        self.route_finder = route_finder
        self.registry = registry
        self.allowance_manager = allowance_manager
        self.swap_submitter = swap_submitter
        self.balance_reader = balance_reader
        self.default_fee_tier = default_fee_tier

    async def execute(
        self,
        quote: Quote,
        amount_in: int,
        user_address: str,
        max_slippage_pct: Decimal,
        mode: ExecutionMode,
    ) -> Result[SwapResult]:
        """
        Run the swap described by `quote.route` for `amount_in` base units.

        Never raises for collaborator failures: they come back as
        `Err(SwapFailed)`. No automatic retry.
        """
        if not Decimal(0) <= Decimal(max_slippage_pct) < Decimal(100):
            return Err(SwapFailed(f"invalid max slippage {max_slippage_pct}%"))

        try:
            if amount_in != quote.amount_in:
                logger.info(f"Re-pricing {quote.route_description} for {amount_in} (was {quote.amount_in})")
                quote = await self.route_finder.quote_route(quote.route, amount_in)
        except SwapfundError as e:
            return Err(SwapFailed(f"could not re-price route: {e.message}"))
        except Exception as e:
            logger.error(f"Quote refresh failed: {e}")
            return Err(SwapFailed(f"could not re-price route: {e}"))

        amount_out_min = minimum_output(quote.amount_out, max_slippage_pct)

        if mode != ExecutionMode.LIVE:
            logger.info(
                f"Simulated swap: {amount_in} {quote.source_asset} -> ~{quote.amount_out} "
                f"{quote.dest_asset} ({quote.route_description})"
            )
            return Ok(SwapResult(
                source_asset=quote.source_asset,
                dest_asset=quote.dest_asset,
                amount_in=amount_in,
                amount_out=quote.amount_out,
                amount_out_minimum=amount_out_min,
                route_description=quote.route_description,
                quote=quote,
                simulated=True,
            ))

        try:
            return await self._execute_live(quote, amount_in, amount_out_min, user_address)
        except SwapfundError as e:
            logger.error(f"Swap failed: {e.message}")
            return Err(e if isinstance(e, SwapFailed) else SwapFailed(e.message))
        except Exception as e:
            logger.error(f"Swap failed: {type(e).__name__}: {e}")
            return Err(SwapFailed(f"{type(e).__name__}: {e}"))

    async def _execute_live(self, quote: Quote, amount_in: int, amount_out_min: int, user_address: str) -> Result[SwapResult]:
        if self.swap_submitter is None:
            return Err(SwapFailed("no swap submitter configured for live execution"))
        if quote.is_simulated:
            return Err(SwapFailed(
                f"refusing to execute simulated quote from {quote.provider}",
                details={"provider": quote.provider},
            ))

        source = quote.source_asset

        if self.balance_reader is not None:
            balance = await self.balance_reader.balance_of(user_address, source)
            if balance < amount_in:
                return Err(SwapFailed(
                    f"insufficient {source} balance. Have: {balance}, Need: {amount_in}",
                    details={"asset": source, "balance": str(balance), "required": str(amount_in)},
                ))

        approval_tx_hash = None
        if not self.registry.is_native(source):
            spender = self.swap_submitter.spender_for(quote.route)
            approval = await self._ensure_allowance(source, spender, amount_in, user_address)
            if isinstance(approval, Err):
                return approval
            approval_tx_hash = approval.value

        fee_tiers = quote.route.execution_fee_tiers(self.default_fee_tier)
        logger.info(f"Swapping {amount_in} {source} for {quote.dest_asset} (min {amount_out_min}, tiers {fee_tiers})...")
        receipt = await self.swap_submitter.submit(quote.route, fee_tiers, amount_in, amount_out_min, user_address)
        if not receipt.success:
            return Err(SwapFailed(
                f"transaction reverted: {receipt.error or 'no reason given'}",
                details={"tx_hash": receipt.tx_hash},
            ))

        amount_out = receipt.amount_out if receipt.amount_out is not None else quote.amount_out
        logger.info(f"Swap successful: {receipt.tx_hash} ({amount_out} {quote.dest_asset})")
        return Ok(SwapResult(
            source_asset=source,
            dest_asset=quote.dest_asset,
            amount_in=amount_in,
            amount_out=amount_out,
            amount_out_minimum=amount_out_min,
            route_description=quote.route_description,
            quote=quote,
            simulated=False,
            tx_hash=receipt.tx_hash,
            approval_tx_hash=approval_tx_hash,
            block_number=receipt.block_number,
        ))

    async def _ensure_allowance(self, asset: str, spender: str, amount: int, owner: str) -> Result[Optional[str]]:
        """Approve `spender` if needed; Ok(approval tx hash or None)."""
        if self.allowance_manager is None:
            return Err(SwapFailed(f"no allowance manager configured to approve {asset}"))

        current = await self.allowance_manager.allowance(asset, owner, spender)
        if current >= amount:
            logger.debug(f"{asset} already approved for {spender} ({current} >= {amount})")
            return Ok(None)

        logger.info(f"Approving {asset} for {spender}...")
        receipt = await self.allowance_manager.approve(asset, spender, amount, owner)
        if not receipt.success:
            return Err(SwapFailed(
                f"approval of {asset} failed: {receipt.error or 'reverted'}",
                details={"tx_hash": receipt.tx_hash},
            ))
        logger.info(f"Approval transaction: {receipt.tx_hash}")
        return Ok(receipt.tx_hash)

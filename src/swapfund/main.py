"""Command-line dry run of the swap-then-deposit workflow.

Usage:
    python -m swapfund.main --asset USDC --amount 100 --user 0xabc... \\
        --balance ETH=1 --balance USDC=40 [--swap-from DAI] [--slippage 1]

Balances are given in human units and served from memory; quotes come
from the simulated providers. Nothing is ever sent on-chain.
"""

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import ValidationError

from swapfund.config import Settings, configure_logging, get_settings
from swapfund.routing.factory import create_route_finder, create_token_registry
from swapfund.services.dry_run import StaticBalanceReader
from swapfund.services.funding_planner import FundingPlanner
from swapfund.services.ports import BalanceReader, StaticExecutionMode
from swapfund.services.swap_executor import SwapExecutor
from swapfund.services.workflow import DepositRequest, WorkflowCoordinator, WorkflowResult

logger = logging.getLogger(__name__)


def parse_balance(value: str) -> tuple[str, Decimal]:
    """Parse a SYMBOL=AMOUNT argument."""
    symbol, sep, amount = value.partition("=")
    if not sep or not symbol.strip():
        raise argparse.ArgumentTypeError(f"expected SYMBOL=AMOUNT, got {value!r}")
    try:
        parsed = Decimal(amount.strip())
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid amount in {value!r}") from None
    if parsed < 0:
        raise argparse.ArgumentTypeError(f"negative balance in {value!r}")
    return symbol.strip(), parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulate a swap-then-deposit workflow")
    parser.add_argument("--asset", required=True, help="Asset to deposit (e.g. USDC)")
    parser.add_argument("--amount", required=True, type=Decimal, help="Amount in human units")
    parser.add_argument("--user", required=True, help="User address")
    parser.add_argument(
        "--balance",
        action="append",
        default=[],
        type=parse_balance,
        metavar="SYMBOL=AMOUNT",
        help="Held balance (repeatable)",
    )
    parser.add_argument("--swap-from", default=None, help="Fund this asset and convert it before depositing")
    parser.add_argument("--slippage", type=Decimal, default=None, help="Max slippage in percent")
    return parser


def build_coordinator(settings: Settings, balance_reader: BalanceReader, registry=None) -> WorkflowCoordinator:
    """Wire a simulation-mode coordinator from settings."""
    registry = registry or create_token_registry(settings)
    route_finder = create_route_finder(settings, registry)
    planner = FundingPlanner(
        route_finder,
        registry,
        priority_assets=settings.funding_priority_assets,
        gas_reserve=settings.gas_reserve,
        safety_buffer=settings.funding_safety_buffer,
    )
    executor = SwapExecutor(
        route_finder,
        registry,
        balance_reader=balance_reader,
        default_fee_tier=settings.default_execution_fee_tier,
    )
    return WorkflowCoordinator(
        registry=registry,
        route_finder=route_finder,
        planner=planner,
        executor=executor,
        balance_reader=balance_reader,
        deposit_sink=None,
        mode_flag=StaticExecutionMode(live=False),
    )


async def run(args: argparse.Namespace, settings: Optional[Settings] = None) -> WorkflowResult:
    # The CLI never executes: always simulated providers, always simulation mode
    settings = (settings or get_settings()).model_copy(update={"dry_run": True, "auto_execute": False})

    request = DepositRequest(
        asset=args.asset,
        amount=args.amount,
        user_address=args.user,
        swap_from=args.swap_from,
        max_slippage_pct=args.slippage if args.slippage is not None else settings.default_max_slippage_pct,
    )

    registry = create_token_registry(settings)
    balance_reader = await StaticBalanceReader.from_human(registry, request.user_address, dict(args.balance))
    coordinator = build_coordinator(settings, balance_reader, registry)
    return await coordinator.run(request)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    logger.info(f"Settings: {settings.get_safe_dict()}")

    try:
        result = asyncio.run(run(args, settings))
    except ValidationError as e:
        parser.error(f"invalid request: {e.errors()[0]['msg']}")
    except Exception as e:
        logger.error(f"Simulation failed: {e}")
        return 1

    print(json.dumps(result.to_dict(), indent=2, default=str))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())

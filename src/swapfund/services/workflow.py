"""Workflow coordinator: funding swap -> target swap -> deposit.

The workflow is a small state machine:

    PLANNING -> (FUNDING_SWAP)? -> (TARGET_SWAP)? -> DEPOSIT -> DONE

with FAILED reachable from every working state. `TRANSITIONS` is the
single authority on which state follows which; each state handler only
reports an event. Swaps already executed are never rolled back: a later
failure is reported as a partial success.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from swapfund.config import ExecutionMode
from swapfund.errors import (
    AmountBelowPrecision,
    BalanceUnavailable,
    DepositFailed,
    Err,
    InsufficientBalanceAbsolute,
    NoFundingPath,
    SwapFailed,
    SwapfundError,
)
from swapfund.routing.finder import RouteFinder
from swapfund.services.funding_planner import FundingPlan, FundingPlanner
from swapfund.services.ports import BalanceReader, BalanceSnapshot, DepositSink, ExecutionModeFlag
from swapfund.services.swap_executor import SwapExecutor
from swapfund.tokens import AssetRef, TokenRegistry

logger = logging.getLogger(__name__)


class WorkflowState(str, Enum):
    PLANNING = "planning"
    FUNDING_SWAP = "funding-swap"
    TARGET_SWAP = "target-swap"
    DEPOSIT = "deposit"
    DONE = "done"
    FAILED = "failed"


class StageEvent(str, Enum):
    FUND = "fund"
    CONVERT = "convert"
    DEPOSIT = "deposit"
    COMPLETE = "complete"
    FAIL = "fail"


TRANSITIONS: dict[tuple[WorkflowState, StageEvent], WorkflowState] = {
    (WorkflowState.PLANNING, StageEvent.FUND): WorkflowState.FUNDING_SWAP,
    (WorkflowState.PLANNING, StageEvent.CONVERT): WorkflowState.TARGET_SWAP,
    (WorkflowState.PLANNING, StageEvent.DEPOSIT): WorkflowState.DEPOSIT,
    (WorkflowState.PLANNING, StageEvent.FAIL): WorkflowState.FAILED,
    (WorkflowState.FUNDING_SWAP, StageEvent.CONVERT): WorkflowState.TARGET_SWAP,
    (WorkflowState.FUNDING_SWAP, StageEvent.DEPOSIT): WorkflowState.DEPOSIT,
    (WorkflowState.FUNDING_SWAP, StageEvent.FAIL): WorkflowState.FAILED,
    (WorkflowState.TARGET_SWAP, StageEvent.DEPOSIT): WorkflowState.DEPOSIT,
    (WorkflowState.TARGET_SWAP, StageEvent.FAIL): WorkflowState.FAILED,
    (WorkflowState.DEPOSIT, StageEvent.COMPLETE): WorkflowState.DONE,
    (WorkflowState.DEPOSIT, StageEvent.FAIL): WorkflowState.FAILED,
}

TERMINAL_STATES = (WorkflowState.DONE, WorkflowState.FAILED)


def next_state(state: WorkflowState, event: StageEvent) -> WorkflowState:
    """Look up a transition; unknown pairs are programming errors."""
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise RuntimeError(f"Invalid workflow transition: {state.value} --{event.value}-->") from None


class DepositRequest(BaseModel):
    """A request to deposit an asset, funding and converting as needed."""

    asset: str = Field(..., min_length=1, description="Asset to deposit (e.g. USDC)")
    amount: Decimal = Field(..., gt=0, description="Amount to fund, in human units")
    user_address: str = Field(..., min_length=1, description="Depositor address")
    swap_from: Optional[str] = Field(
        default=None,
        description="Fund `amount` of this asset and convert it to `asset` before depositing",
    )
    max_slippage_pct: Decimal = Field(
        default=Decimal("1"), ge=0, lt=50, description="Max slippage in percent"
    )

    @property
    def funding_asset(self) -> str:
        """Asset whose balance must cover `amount`."""
        return self.swap_from or self.asset

    @property
    def needs_conversion(self) -> bool:
        return bool(self.swap_from) and self.swap_from.upper() != self.asset.upper()


@dataclass(frozen=True)
class StageResult:
    """Outcome of one executed stage."""

    stage: WorkflowState
    success: bool
    payload: Optional[dict[str, Any]] = None
    error: Optional[SwapfundError] = None

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "success": self.success,
            "payload": self.payload,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class WorkflowResult:
    """Structured outcome of one workflow invocation."""

    success: bool
    simulation: bool
    stages: tuple[StageResult, ...]
    final_error: Optional[SwapfundError] = None
    plan: Optional[FundingPlan] = None
    suggestion: Optional[str] = None

    @property
    def partial_success(self) -> bool:
        """Failed overall, but at least one stage went through."""
        return not self.success and any(stage.success for stage in self.stages)

    def stage(self, name: WorkflowState) -> Optional[StageResult]:
        for stage in self.stages:
            if stage.stage == name:
                return stage
        return None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "simulation": self.simulation,
            "partial_success": self.partial_success,
            "stages": [stage.to_dict() for stage in self.stages],
            "final_error": self.final_error.to_dict() if self.final_error else None,
            "plan": self.plan.to_dict() if self.plan else None,
            "suggestion": self.suggestion,
        }


@dataclass
class _Run:
    """Mutable per-invocation state; discarded when the result is built."""

    request: DepositRequest
    mode: ExecutionMode
    deposit_asset: Optional[AssetRef] = None
    funding_asset: Optional[AssetRef] = None
    required_amount: int = 0
    deposit_amount: int = 0
    snapshot: Optional[BalanceSnapshot] = None
    plan: Optional[FundingPlan] = None
    stages: list[StageResult] = field(default_factory=list)
    error: Optional[SwapfundError] = None
    suggestion: Optional[str] = None

    @property
    def simulation(self) -> bool:
        return self.mode != ExecutionMode.LIVE

    def fail(self, stage: WorkflowState, error: SwapfundError, record: bool = True) -> StageEvent:
        error.at_stage(stage.value)
        if record:
            self.stages.append(StageResult(stage=stage, success=False, error=error))
        self.error = error
        logger.error(f"Workflow failed at {stage.value}: {error.message}")
        return StageEvent.FAIL

    def succeed(self, stage: WorkflowState, payload: dict[str, Any]) -> None:
        self.stages.append(StageResult(stage=stage, success=True, payload=payload))


class WorkflowCoordinator:
    """Sequences planning, funding swap, target swap and deposit."""

    def __init__(
        self,
        registry: TokenRegistry,
        route_finder: RouteFinder,
        planner: FundingPlanner,
        executor: SwapExecutor,
        balance_reader: BalanceReader,
        deposit_sink: Optional[DepositSink],
        mode_flag: ExecutionModeFlag,
    ):
        self.registry = registry
        self.route_finder = route_finder
        self.planner = planner
        self.executor = executor
        self.balance_reader = balance_reader
        self.deposit_sink = deposit_sink
        self.mode_flag = mode_flag

        self._handlers: dict[WorkflowState, Callable[[_Run], Awaitable[StageEvent]]] = {
            WorkflowState.PLANNING: self._plan,
            WorkflowState.FUNDING_SWAP: self._funding_swap,
            WorkflowState.TARGET_SWAP: self._target_swap,
            WorkflowState.DEPOSIT: self._deposit,
        }

    async def run(self, request: DepositRequest) -> WorkflowResult:
        """Run the workflow to completion. Never raises for stage failures."""
        run = _Run(request=request, mode=self.mode_flag.mode)
        logger.info(
            f"Workflow start ({run.mode.value}): deposit {request.amount} {request.asset} "
            f"for {request.user_address}"
            + (f", converting from {request.swap_from}" if request.needs_conversion else "")
        )

        state = WorkflowState.PLANNING
        while state not in TERMINAL_STATES:
            handler = self._handlers[state]
            try:
                event = await handler(run)
            except SwapfundError as e:
                event = run.fail(state, e, record=state != WorkflowState.PLANNING)
            except Exception as e:
                logger.exception(f"Unexpected error in {state.value}")
                error = self._unexpected(state, e)
                event = run.fail(state, error, record=state != WorkflowState.PLANNING)
            new_state = next_state(state, event)
            logger.debug(f"Workflow transition: {state.value} --{event.value}--> {new_state.value}")
            state = new_state

        result = WorkflowResult(
            success=state == WorkflowState.DONE,
            simulation=run.simulation,
            stages=tuple(run.stages),
            final_error=run.error,
            plan=run.plan,
            suggestion=run.suggestion,
        )
        logger.info(
            f"Workflow {'completed' if result.success else 'failed'}: "
            f"{[s.stage.value + (':ok' if s.success else ':failed') for s in result.stages]}"
        )
        return result

    @staticmethod
    def _unexpected(state: WorkflowState, e: Exception) -> SwapfundError:
        message = f"{type(e).__name__}: {e}"
        if state == WorkflowState.DEPOSIT:
            return DepositFailed(message)
        if state == WorkflowState.PLANNING:
            return BalanceUnavailable(f"Planning failed: {message}")
        return SwapFailed(message)

    # ----------------------------------------------------------------
    # States
    # ----------------------------------------------------------------

    async def _plan(self, run: _Run) -> StageEvent:
        request = run.request
        run.deposit_asset = await self.registry.resolve(request.asset)
        run.funding_asset = await self.registry.resolve(request.funding_asset)
        run.required_amount = run.funding_asset.to_base_units(request.amount)
        if run.required_amount <= 0:
            return run.fail(
                WorkflowState.PLANNING,
                AmountBelowPrecision(
                    f"Amount {request.amount} is below the precision of {run.funding_asset.symbol} "
                    f"({run.funding_asset.decimals} decimals)",
                    details={"asset": run.funding_asset.symbol, "amount": str(request.amount)},
                ),
                record=False,
            )

        try:
            run.snapshot = await self.balance_reader.snapshot(request.user_address)
        except Exception as e:
            return run.fail(
                WorkflowState.PLANNING,
                BalanceUnavailable(f"Could not read balances for {request.user_address}: {e}"),
                record=False,
            )

        run.plan = await self.planner.plan(run.funding_asset.symbol, run.required_amount, run.snapshot)
        plan = run.plan

        if not plan.sufficient_already and not plan.has_funding_path:
            return run.fail(WorkflowState.PLANNING, self._planning_error(run), record=False)

        # Without conversion the deposit is the required amount itself
        run.deposit_amount = run.required_amount

        if plan.has_funding_path:
            return StageEvent.FUND
        if request.needs_conversion:
            return StageEvent.CONVERT
        return StageEvent.DEPOSIT

    def _planning_error(self, run: _Run) -> SwapfundError:
        plan = run.plan
        asset = run.funding_asset
        held = run.snapshot.get(asset.symbol)
        details = {
            "asset": asset.symbol,
            "required": str(asset.to_human(run.required_amount)),
            "held": str(asset.to_human(held)),
            "shortfall": str(asset.to_human(plan.shortfall)),
            "candidates_tried": list(plan.candidates_tried),
            "balances": run.snapshot.to_dict()["balances"],
        }
        if plan.blocked_by_balance:
            return InsufficientBalanceAbsolute(
                f"Insufficient balance to cover {details['shortfall']} {asset.symbol}: "
                f"no held asset can afford the swap",
                details=details,
            )
        return NoFundingPath(
            f"Insufficient {asset.symbol} balance. Have: {details['held']}, Need: {details['required']}, "
            f"Shortfall: {details['shortfall']}; no supported asset can cover it",
            details=details,
        )

    async def _funding_swap(self, run: _Run) -> StageEvent:
        plan = run.plan
        outcome = await self.executor.execute(
            plan.quote,
            plan.source_amount,
            run.request.user_address,
            run.request.max_slippage_pct,
            run.mode,
        )
        if isinstance(outcome, Err):
            run.suggestion = await self._manual_funding_hint(plan)
            return run.fail(WorkflowState.FUNDING_SWAP, outcome.error)

        run.succeed(WorkflowState.FUNDING_SWAP, outcome.value.to_dict())
        return StageEvent.CONVERT if run.request.needs_conversion else StageEvent.DEPOSIT

    async def _manual_funding_hint(self, plan: FundingPlan) -> str:
        source = await self.registry.resolve(plan.source_asset)
        required = await self.registry.resolve(plan.required_asset)
        return (
            f"You need {required.to_human(plan.shortfall)} more {required.symbol}. "
            f"You may have enough {source.symbol} to cover this manually: try swapping "
            f"{source.to_human(plan.source_amount)} {source.symbol} to {required.symbol}."
        )

    async def _target_swap(self, run: _Run) -> StageEvent:
        quote = await self.route_finder.find_route(
            run.funding_asset.symbol, run.deposit_asset.symbol, run.required_amount
        )
        outcome = await self.executor.execute(
            quote,
            run.required_amount,
            run.request.user_address,
            run.request.max_slippage_pct,
            run.mode,
        )
        if isinstance(outcome, Err):
            return run.fail(WorkflowState.TARGET_SWAP, outcome.error)

        run.deposit_amount = outcome.value.amount_out
        run.succeed(WorkflowState.TARGET_SWAP, outcome.value.to_dict())
        return StageEvent.DEPOSIT

    async def _deposit(self, run: _Run) -> StageEvent:
        asset = run.deposit_asset
        amount = run.deposit_amount
        payload = {
            "asset": asset.symbol,
            "amount": str(amount),
            "amount_human": str(asset.to_human(amount)),
        }

        if run.simulation:
            logger.info(f"Simulated deposit: {asset.to_human(amount)} {asset.symbol}")
            run.succeed(WorkflowState.DEPOSIT, {**payload, "simulated": True})
            return StageEvent.COMPLETE

        if self.deposit_sink is None:
            return run.fail(WorkflowState.DEPOSIT, DepositFailed("no deposit collaborator configured"))

        try:
            receipt = await self.deposit_sink.deposit(asset.symbol, amount, run.request.user_address)
        except DepositFailed as e:
            return run.fail(WorkflowState.DEPOSIT, e)
        except SwapfundError as e:
            return run.fail(WorkflowState.DEPOSIT, DepositFailed(e.message))
        except Exception as e:
            return run.fail(WorkflowState.DEPOSIT, DepositFailed(f"{type(e).__name__}: {e}"))

        if not receipt.success:
            return run.fail(
                WorkflowState.DEPOSIT,
                DepositFailed("deposit transaction reverted", details={"tx_hash": receipt.tx_hash}),
            )

        logger.info(f"Deposit successful: {receipt.tx_hash}")
        run.succeed(WorkflowState.DEPOSIT, {**payload, "simulated": False, "tx_hash": receipt.tx_hash})
        return StageEvent.COMPLETE

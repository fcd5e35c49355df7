"""Funding, swap execution and workflow services."""

from swapfund.services.funding_planner import FundingCandidate, FundingPlan, FundingPlanner
from swapfund.services.ports import (
    AllowanceManager,
    BalanceReader,
    BalanceSnapshot,
    DepositReceipt,
    DepositSink,
    ExecutionModeFlag,
    StaticExecutionMode,
    SwapSubmitter,
    TxReceipt,
)
from swapfund.services.swap_executor import SwapExecutor, SwapResult
from swapfund.services.workflow import (
    DepositRequest,
    StageResult,
    WorkflowCoordinator,
    WorkflowResult,
    WorkflowState,
)

__all__ = [
    "FundingCandidate",
    "FundingPlan",
    "FundingPlanner",
    "AllowanceManager",
    "BalanceReader",
    "BalanceSnapshot",
    "DepositReceipt",
    "DepositSink",
    "ExecutionModeFlag",
    "StaticExecutionMode",
    "SwapSubmitter",
    "TxReceipt",
    "SwapExecutor",
    "SwapResult",
    "DepositRequest",
    "StageResult",
    "WorkflowCoordinator",
    "WorkflowResult",
    "WorkflowState",
]

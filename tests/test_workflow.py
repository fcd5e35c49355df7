"""Tests for the swap-then-deposit workflow coordinator."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from swapfund.errors import DepositFailed, ErrorKind
from swapfund.services.dry_run import StaticBalanceReader
from swapfund.services.ports import DepositReceipt, StaticExecutionMode, TxReceipt
from swapfund.services.swap_executor import SwapExecutor
from swapfund.services.workflow import (
    TRANSITIONS,
    DepositRequest,
    StageEvent,
    WorkflowCoordinator,
    WorkflowState,
    next_state,
)

USER = "0x1111111111111111111111111111111111111111"
ETH = 10**18
X = 10**6


@pytest.fixture
def sink():
    sink = MagicMock()
    sink.deposit = AsyncMock(
        side_effect=lambda asset, amount, user: DepositReceipt(tx_hash="0xdeposit", asset=asset, amount=amount)
    )
    return sink


@pytest.fixture
def allowance_manager():
    manager = MagicMock()
    manager.allowance = AsyncMock(return_value=0)
    manager.approve = AsyncMock(return_value=TxReceipt(tx_hash="0xapprove"))
    return manager


@pytest.fixture
def submitter():
    submitter = MagicMock()
    submitter.spender_for.return_value = "0xrouter"
    submitter.submit = AsyncMock(return_value=TxReceipt(tx_hash="0xswap", amount_out=60_600_000))
    return submitter


@pytest.fixture
def make_coordinator(registry, pool_finder, planner, allowance_manager, submitter, sink):
    def _make(balances: dict, live: bool = True) -> WorkflowCoordinator:
        reader = StaticBalanceReader({USER: balances})
        executor = SwapExecutor(
            pool_finder,
            registry,
            allowance_manager=allowance_manager,
            swap_submitter=submitter,
            balance_reader=reader,
        )
        return WorkflowCoordinator(
            registry=registry,
            route_finder=pool_finder,
            planner=planner,
            executor=executor,
            balance_reader=reader,
            deposit_sink=sink,
            mode_flag=StaticExecutionMode(live=live),
        )

    return _make


def request(**overrides) -> DepositRequest:
    data = {"asset": "X", "amount": Decimal("100"), "user_address": USER}
    data.update(overrides)
    return DepositRequest(**data)


class TestTransitions:
    """Tests for the transition table."""

    def test_failed_reachable_from_every_working_state(self):
        for state in (
            WorkflowState.PLANNING,
            WorkflowState.FUNDING_SWAP,
            WorkflowState.TARGET_SWAP,
            WorkflowState.DEPOSIT,
        ):
            assert next_state(state, StageEvent.FAIL) == WorkflowState.FAILED

    def test_deposit_is_the_only_way_to_done(self):
        sources = {state for (state, _), target in TRANSITIONS.items() if target == WorkflowState.DONE}
        assert sources == {WorkflowState.DEPOSIT}

    def test_invalid_transition(self):
        with pytest.raises(RuntimeError):
            next_state(WorkflowState.TARGET_SWAP, StageEvent.FUND)


class TestDepositRequest:
    """Tests for request validation."""

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            request(amount=Decimal("0"))

    def test_slippage_bounds(self):
        with pytest.raises(ValidationError):
            request(max_slippage_pct=Decimal("50"))
        assert request(max_slippage_pct=Decimal("0")).max_slippage_pct == 0

    def test_funding_asset(self):
        assert request().funding_asset == "X"
        assert request(swap_from="Y").funding_asset == "Y"
        assert request(swap_from="Y").needs_conversion is True
        assert request(swap_from="x").needs_conversion is False


class TestSufficientBalance:
    """User already holds the required amount."""

    @pytest.mark.asyncio
    async def test_deposits_without_swapping(self, make_coordinator, sink, submitter, pools):
        coordinator = make_coordinator({"X": 100 * X})

        result = await coordinator.run(request())

        assert result.success is True
        assert result.simulation is False
        assert [s.stage for s in result.stages] == [WorkflowState.DEPOSIT]
        sink.deposit.assert_awaited_once_with("X", 100 * X, USER)
        submitter.submit.assert_not_called()
        assert pools.calls == []
        assert result.plan.sufficient_already is True


class TestFundingSwap:
    """User covers a shortfall from the native asset."""

    @pytest.mark.asyncio
    async def test_funds_then_deposits(self, make_coordinator, pools, sink, submitter, allowance_manager):
        pools.add_pool("ETH", "X", 3000, Decimal("120"))
        coordinator = make_coordinator({"ETH": 1 * ETH, "X": 40 * X})

        result = await coordinator.run(request())

        assert result.success is True
        assert [s.stage for s in result.stages] == [WorkflowState.FUNDING_SWAP, WorkflowState.DEPOSIT]
        funding = result.stage(WorkflowState.FUNDING_SWAP)
        assert funding.success is True
        assert funding.payload["source_asset"] == "ETH"
        assert funding.payload["amount_in"] == str(505 * 10**15)
        submitter.submit.assert_awaited_once()
        # Native source: no approval
        allowance_manager.allowance.assert_not_called()
        sink.deposit.assert_awaited_once_with("X", 100 * X, USER)
        assert result.stage(WorkflowState.TARGET_SWAP) is None

    @pytest.mark.asyncio
    async def test_deposit_failure_after_funding_is_partial(self, make_coordinator, pools, sink):
        pools.add_pool("ETH", "X", 3000, Decimal("120"))
        sink.deposit = AsyncMock(side_effect=RuntimeError("pool paused"))
        coordinator = make_coordinator({"ETH": 1 * ETH, "X": 40 * X})

        result = await coordinator.run(request())

        assert result.success is False
        assert result.partial_success is True
        assert [(s.stage, s.success) for s in result.stages] == [
            (WorkflowState.FUNDING_SWAP, True),
            (WorkflowState.DEPOSIT, False),
        ]
        assert result.stage(WorkflowState.TARGET_SWAP) is None
        assert result.final_error.kind == ErrorKind.DEPOSIT_FAILED
        assert result.final_error.stage == "deposit"
        assert "pool paused" in result.final_error.message

    @pytest.mark.asyncio
    async def test_deposit_failed_error_passes_through(self, make_coordinator, sink):
        sink.deposit = AsyncMock(side_effect=DepositFailed("cap reached"))
        coordinator = make_coordinator({"X": 100 * X})

        result = await coordinator.run(request())

        assert result.final_error.message == "Deposit failed: cap reached"

    @pytest.mark.asyncio
    async def test_reverted_deposit(self, make_coordinator, sink):
        sink.deposit = AsyncMock(
            return_value=DepositReceipt(tx_hash="0xd", asset="X", amount=100 * X, success=False)
        )
        coordinator = make_coordinator({"X": 100 * X})

        result = await coordinator.run(request())

        assert result.success is False
        assert result.final_error.kind == ErrorKind.DEPOSIT_FAILED

    @pytest.mark.asyncio
    async def test_funding_failure_suggests_manual_swap(self, make_coordinator, pools, submitter, sink):
        pools.add_pool("ETH", "X", 3000, Decimal("120"))
        submitter.submit = AsyncMock(return_value=TxReceipt(tx_hash="0xbad", success=False))
        coordinator = make_coordinator({"ETH": 1 * ETH, "X": 40 * X})

        result = await coordinator.run(request())

        assert result.success is False
        assert result.partial_success is False
        assert result.final_error.kind == ErrorKind.SWAP_FAILED
        assert result.final_error.stage == "funding-swap"
        assert "ETH" in result.suggestion
        assert "60" in result.suggestion
        sink.deposit.assert_not_called()


class TestTargetSwap:
    """Request converts a funded asset before depositing."""

    @pytest.mark.asyncio
    async def test_converts_then_deposits_output(self, make_coordinator, pools, sink, submitter):
        pools.add_pool("X", "Y", 500, Decimal("2"))
        submitter.submit = AsyncMock(return_value=TxReceipt(tx_hash="0xswap", amount_out=99 * ETH))
        coordinator = make_coordinator({"X": 50 * X})

        result = await coordinator.run(request(asset="Y", amount=Decimal("50"), swap_from="X"))

        assert result.success is True
        assert [s.stage for s in result.stages] == [WorkflowState.TARGET_SWAP, WorkflowState.DEPOSIT]
        sink.deposit.assert_awaited_once_with("Y", 99 * ETH, USER)

    @pytest.mark.asyncio
    async def test_target_swap_without_route(self, make_coordinator, sink):
        coordinator = make_coordinator({"X": 50 * X})

        result = await coordinator.run(request(asset="Y", amount=Decimal("50"), swap_from="X"))

        assert result.success is False
        assert result.final_error.kind == ErrorKind.NO_ROUTE_FOUND
        assert result.final_error.stage == "target-swap"
        assert result.stage(WorkflowState.TARGET_SWAP).success is False
        sink.deposit.assert_not_called()

    @pytest.mark.asyncio
    async def test_target_swap_failure_after_funding_is_partial(self, make_coordinator, pools, submitter, sink):
        pools.add_pool("ETH", "X", 3000, Decimal("120"))
        pools.add_pool("X", "Y", 500, Decimal("2"))
        coordinator = make_coordinator({"ETH": 1 * ETH, "X": 40 * X})

        async def submit(route, fee_tiers, amount_in, amount_out_min, user_address):
            if route.source_asset == "ETH":
                coordinator.balance_reader.set_balance(USER, "X", 100 * X)
                return TxReceipt(tx_hash="0xfund", amount_out=60_600_000)
            return TxReceipt(tx_hash="0xbad", success=False, error="STF")

        submitter.submit = AsyncMock(side_effect=submit)

        result = await coordinator.run(request(asset="Y", swap_from="X"))

        assert result.success is False
        assert result.partial_success is True
        assert [(s.stage, s.success) for s in result.stages] == [
            (WorkflowState.FUNDING_SWAP, True),
            (WorkflowState.TARGET_SWAP, False),
        ]
        assert result.final_error.kind == ErrorKind.SWAP_FAILED
        assert result.final_error.stage == "target-swap"
        assert "reverted" in result.final_error.message
        assert submitter.submit.await_count == 2
        sink.deposit.assert_not_called()


class TestSimulation:
    """Simulation traverses every stage without state changes."""

    @pytest.mark.asyncio
    async def test_full_plan_without_state_changes(
        self, make_coordinator, pools, sink, submitter, allowance_manager
    ):
        pools.add_pool("DAI", "X", 500, Decimal("1"))
        pools.add_pool("X", "Y", 500, Decimal("2"))
        coordinator = make_coordinator({"DAI": 100 * ETH, "X": 40 * X}, live=False)

        result = await coordinator.run(request(asset="Y", swap_from="X"))

        assert result.success is True
        assert result.simulation is True
        assert [s.stage for s in result.stages] == [
            WorkflowState.FUNDING_SWAP,
            WorkflowState.TARGET_SWAP,
            WorkflowState.DEPOSIT,
        ]
        assert all(s.payload["simulated"] for s in result.stages)
        assert result.stage(WorkflowState.DEPOSIT).payload["amount"] == str(200 * ETH)
        allowance_manager.allowance.assert_not_called()
        allowance_manager.approve.assert_not_called()
        submitter.submit.assert_not_called()
        sink.deposit.assert_not_called()

    @pytest.mark.asyncio
    async def test_result_serializes(self, make_coordinator):
        coordinator = make_coordinator({"X": 100 * X}, live=False)

        data = (await coordinator.run(request())).to_dict()

        assert data["success"] is True
        assert data["simulation"] is True
        assert data["stages"][0]["stage"] == "deposit"
        assert data["stages"][0]["payload"]["amount_human"] == "100"
        assert data["plan"]["sufficient_already"] is True


class TestPlanningFailures:
    """Planning failures end the workflow before any stage runs."""

    @pytest.mark.asyncio
    async def test_no_funding_path(self, make_coordinator, submitter):
        coordinator = make_coordinator({"ETH": 1 * ETH, "X": 40 * X})

        result = await coordinator.run(request())

        assert result.success is False
        assert result.stages == ()
        assert result.partial_success is False
        assert result.final_error.kind == ErrorKind.NO_FUNDING_PATH
        assert result.final_error.stage == "planning"
        assert result.final_error.details["balances"] == {"ETH": str(ETH), "X": str(40 * X)}
        submitter.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_insufficient_balance_absolute(self, make_coordinator, pools):
        pools.add_pool("ETH", "X", 3000, Decimal("120"))
        coordinator = make_coordinator({"ETH": 3 * 10**17, "X": 40 * X})

        result = await coordinator.run(request())

        assert result.final_error.kind == ErrorKind.INSUFFICIENT_BALANCE_ABSOLUTE
        assert result.final_error.stage == "planning"
        assert result.stages == ()

    @pytest.mark.asyncio
    async def test_unknown_asset(self, make_coordinator):
        coordinator = make_coordinator({"X": 100 * X})

        result = await coordinator.run(request(asset="NOPE"))

        assert result.final_error.kind == ErrorKind.UNKNOWN_ASSET
        assert result.final_error.stage == "planning"

    @pytest.mark.asyncio
    async def test_balance_read_failure(self, make_coordinator):
        coordinator = make_coordinator({})
        coordinator.balance_reader = MagicMock()
        coordinator.balance_reader.snapshot = AsyncMock(side_effect=TimeoutError("rpc timeout"))

        result = await coordinator.run(request())

        assert result.final_error.kind == ErrorKind.BALANCE_UNAVAILABLE
        assert result.stages == ()

    @pytest.mark.asyncio
    async def test_amount_below_asset_precision(self, make_coordinator, submitter):
        coordinator = make_coordinator({"X": 100 * X})

        result = await coordinator.run(request(amount=Decimal("0.0000001")))

        assert result.success is False
        assert result.stages == ()
        assert result.final_error.kind == ErrorKind.AMOUNT_BELOW_PRECISION
        assert result.final_error.stage == "planning"
        assert "6 decimals" in result.final_error.message
        submitter.submit.assert_not_called()

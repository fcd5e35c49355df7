"""Tests for the funding planner."""

from decimal import Decimal

import pytest

from swapfund.errors import QuoteUnavailable
from swapfund.routing.base import PoolQuoter
from swapfund.routing.dry_run import SimulatedQuoteSource
from swapfund.routing.finder import RouteFinder
from swapfund.services.funding_planner import FundingPlanner
from swapfund.services.ports import BalanceSnapshot

USER = "0x1111111111111111111111111111111111111111"
ETH = 10**18
X = 10**6


def snapshot(**balances: int) -> BalanceSnapshot:
    return BalanceSnapshot(user_address=USER, balances=balances)


class SteepPool(PoolQuoter):
    """ETH -> X pool paying 120 X/ETH for 1 ETH or more, 60 below that."""

    @property
    def name(self) -> str:
        return "steep"

    async def quote_fee_tier(self, source, dest, amount_in, fee_tier):
        if (source.symbol, dest.symbol) != ("ETH", "X"):
            raise QuoteUnavailable("no pool")
        rate = 120 if amount_in >= ETH else 60
        return amount_in * rate // 10**12


class TestSufficientBalance:
    """Tests for the no-shortfall path."""

    @pytest.mark.asyncio
    async def test_exact_balance_is_sufficient(self, planner, pools):
        plan = await planner.plan("X", 100 * X, snapshot(X=100 * X))

        assert plan.sufficient_already is True
        assert plan.shortfall == 0
        assert plan.has_funding_path is False
        assert pools.calls == []

    @pytest.mark.asyncio
    async def test_balance_lookup_is_case_insensitive(self, planner):
        plan = await planner.plan("X", 100 * X, snapshot(x=150 * X))

        assert plan.sufficient_already is True


class TestShortfallFunding:
    """Tests for covering a shortfall from other holdings."""

    @pytest.mark.asyncio
    async def test_native_asset_covers_shortfall(self, planner, pools):
        """40 of 100 X held, 1 ETH convertible at 1:120."""
        pools.add_pool("ETH", "X", 3000, Decimal("120"))

        plan = await planner.plan("X", 100 * X, snapshot(ETH=1 * ETH, X=40 * X))

        assert plan.sufficient_already is False
        assert plan.shortfall == 60 * X
        assert plan.source_asset == "ETH"
        # 60 X / 120 X per ETH * 1.01 = 0.505 ETH
        assert plan.source_amount == 505 * 10**15
        assert plan.expected_output == 60_600_000
        assert plan.expected_output >= plan.shortfall
        assert plan.quote.amount_in == plan.source_amount

    @pytest.mark.asyncio
    async def test_rough_quote_uses_balance_minus_gas_reserve(self, planner, pools):
        pools.add_pool("ETH", "X", 3000, Decimal("120"))

        await planner.plan("X", 100 * X, snapshot(ETH=1 * ETH, X=40 * X))

        first_amounts = [amount for src, _, _, amount in pools.calls if src == "ETH"]
        assert first_amounts[0] == 99 * 10**16

    @pytest.mark.asyncio
    async def test_never_exceeds_candidate_balance(self, planner, pools):
        pools.add_pool("ETH", "X", 3000, Decimal("120"))
        pools.add_pool("DAI", "X", 500, Decimal("1"))

        plan = await planner.plan("X", 100 * X, snapshot(ETH=1 * ETH, DAI=70 * ETH, X=40 * X))

        assert plan.has_funding_path
        held = {"ETH": 1 * ETH - 10**16, "DAI": 70 * ETH}
        assert plan.source_amount <= held[plan.source_asset]

    @pytest.mark.asyncio
    async def test_cheapest_candidate_wins(self, planner, pools):
        """DAI needs ~60.6 units, ETH needs ~0.505: the smaller amount is chosen."""
        pools.add_pool("ETH", "X", 3000, Decimal("120"))
        pools.add_pool("DAI", "X", 500, Decimal("1"))

        plan = await planner.plan("X", 100 * X, snapshot(ETH=1 * ETH, DAI=100 * ETH, X=40 * X))

        assert plan.source_asset == "ETH"
        assert set(plan.candidates_tried) == {"ETH", "DAI"}

    @pytest.mark.asyncio
    async def test_falls_through_to_held_assets(self, planner, pools):
        pools.add_pool("Y", "X", 500, Decimal("2"))

        plan = await planner.plan("X", 100 * X, snapshot(Y=100 * ETH, X=40 * X))

        assert plan.source_asset == "Y"
        assert plan.expected_output >= 60 * X

    @pytest.mark.asyncio
    async def test_gas_reserve_excludes_dust_native_balance(self, planner, pools):
        pools.add_pool("ETH", "X", 3000, Decimal("120"))

        plan = await planner.plan("X", 100 * X, snapshot(ETH=10**16, X=40 * X))

        assert plan.has_funding_path is False
        assert plan.candidates_tried == ()
        assert pools.calls == []


class TestNoFundingPath:
    """Tests for plans that cannot be funded."""

    @pytest.mark.asyncio
    async def test_no_route_for_any_candidate(self, planner):
        plan = await planner.plan("X", 100 * X, snapshot(ETH=1 * ETH, X=40 * X))

        assert plan.has_funding_path is False
        assert plan.blocked_by_balance is False
        assert plan.shortfall == 60 * X
        assert plan.source_asset is None
        assert plan.expected_output is None

    @pytest.mark.asyncio
    async def test_blocked_by_balance(self, planner, pools):
        """0.3 ETH at 1:120 prices the shortfall but cannot afford it."""
        pools.add_pool("ETH", "X", 3000, Decimal("120"))

        plan = await planner.plan("X", 100 * X, snapshot(ETH=3 * 10**17, X=40 * X))

        assert plan.has_funding_path is False
        assert plan.blocked_by_balance is True
        assert plan.candidates_tried == ("ETH",)

    @pytest.mark.asyncio
    async def test_precise_quote_short_of_shortfall_rejects(self, registry):
        """A pool whose rate halves for small trades fails the second pass."""
        finder = RouteFinder(registry, pool_quoter=SteepPool(), intermediates=())
        planner = FundingPlanner(finder, registry, gas_reserve=Decimal("0"), safety_buffer=Decimal("0"))

        plan = await planner.plan("X", 60 * X, snapshot(ETH=2 * ETH))

        # Rough pass: 2 ETH -> 240 X, so 0.5 ETH is estimated; it only yields 30 X
        assert plan.has_funding_path is False
        assert plan.blocked_by_balance is False
        assert plan.candidates_tried == ("ETH",)


class TestEstimate:
    """Tests for the source amount estimate."""

    @pytest.mark.asyncio
    async def test_estimate_rounds_up(self, planner, pool_finder, pools):
        pools.add_pool("ETH", "X", 3000, Decimal("3"))
        rough = await pool_finder.find_route("ETH", "X", 10**18)

        # 1 base unit of X at 3 X/ETH, plus 1%: ceil(10**12 / 3 * 1.01)
        estimate = planner.estimate_source_amount(1, rough)

        assert estimate == 336_666_666_667

    @pytest.mark.asyncio
    async def test_candidate_order(self, registry, pool_finder):
        planner = FundingPlanner(pool_finder, registry, priority_assets=["USDC", "DAI"])
        balances = snapshot(Y=5, DAI=5, ETH=2 * ETH, USDC=5, X=5)

        candidates = await planner.candidate_balances("X", balances)

        assert [asset for asset, _ in candidates] == ["ETH", "USDC", "DAI", "Y"]
        assert candidates[0][1] == 2 * ETH - 10**16

    @pytest.mark.asyncio
    async def test_aggregator_backed_planning(self, registry):
        aggregator = SimulatedQuoteSource(prices={"ETH": Decimal("3000"), "USDC": Decimal("1")})
        finder = RouteFinder(registry, aggregator=aggregator)
        planner = FundingPlanner(finder, registry)

        plan = await planner.plan("USDC", 100 * X, snapshot(ETH=1 * ETH, USDC=40 * X))

        assert plan.source_asset == "ETH"
        assert plan.expected_output >= 60 * X
        assert plan.to_dict()["source_asset"] == "ETH"

"""Unit tests for order building and the liquidation sweep."""

import pytest

from rebalancer.portfolio.base import AllocationResult, Holding, OrderAction
from rebalancer.portfolio.orders import OrderBuilder, deviation_percentage
from rebalancer.portfolio.targets import TargetAllocation


def make_allocation(
    ticker: str,
    target: float,
    current: float,
    price: float,
    percent: float = 50.0,
) -> TargetAllocation:
    """Create a target allocation."""
    return TargetAllocation(
        ticker=ticker,
        target_percent=percent,
        target_value=target,
        current_value=current,
        difference=target - current,
        price=price,
        current_shares=current / price,
    )


def make_result(final_shares: dict, **kwargs) -> AllocationResult:
    """Create a local allocation result."""
    return AllocationResult(
        final_shares=final_shares,
        leftover_budget=kwargs.pop("leftover_budget", 0.0),
        promotions=kwargs.pop("promotions", 0),
        strategy_used=kwargs.pop("strategy_used", "multi-share"),
        **kwargs,
    )


@pytest.fixture
def builder() -> OrderBuilder:
    """Create order builder."""
    return OrderBuilder()


class TestTargetOrders:
    """Test cases for orders on the target set."""

    def test_buy_sell_hold(self, builder: OrderBuilder) -> None:
        """Test one order per target with the correct action."""
        allocations = [
            make_allocation("VTI", target=2000.0, current=2500.0, price=250.0),
            make_allocation("VEA", target=2000.0, current=0.0, price=50.0),
            make_allocation("BND", target=0.0, current=0.0, price=70.0, percent=0.0),
        ]
        holdings = {"VTI": Holding("VTI", shares=10, price=250.0)}

        orders = builder.build(allocations, make_result({"VEA": 39}), holdings, 4000.0)

        vti, vea, bnd = orders
        assert (vti.ticker, vti.action, vti.shares) == ("VTI", OrderAction.SELL, -2)
        assert vti.final_value == 2000.0
        assert vti.difference == -500.0
        assert vti.deviation_percentage == pytest.approx(0.0)

        assert (vea.ticker, vea.action, vea.shares) == ("VEA", OrderAction.BUY, 39)
        assert vea.final_value == 1950.0
        assert vea.difference == 1950.0
        assert vea.deviation_percentage == pytest.approx(-1.25)

        assert (bnd.ticker, bnd.action, bnd.shares) == ("BND", OrderAction.HOLD, 0)
        assert bnd.final_value == 0.0
        assert bnd.reason == "At target"

    def test_buy_without_allocation(self, builder: OrderBuilder) -> None:
        """Test a buy candidate that received no shares is a zero-share BUY."""
        allocations = [make_allocation("VEA", target=40.0, current=0.0, price=50.0)]

        (order,) = builder.build(allocations, make_result({}), {}, 80.0)

        assert order.action == OrderAction.BUY
        assert order.shares == 0
        assert order.final_value == 0.0

    def test_sell_rounds_half_up(self, builder: OrderBuilder) -> None:
        """Test sell share counts round half up."""
        allocations = [make_allocation("VTI", target=375.0, current=500.0, price=50.0)]
        holdings = {"VTI": Holding("VTI", shares=10, price=50.0)}

        (order,) = builder.build(allocations, make_result({}), holdings, 750.0)

        # 125 / 50 = 2.5 shares
        assert order.shares == -3
        assert order.final_value == 350.0
        assert order.difference == -150.0

    def test_sell_rounds_down_below_half(self, builder: OrderBuilder) -> None:
        """Test sell share counts below .5 round down."""
        allocations = [make_allocation("VTI", target=380.0, current=500.0, price=50.0)]
        holdings = {"VTI": Holding("VTI", shares=10, price=50.0)}

        (order,) = builder.build(allocations, make_result({}), holdings, 750.0)

        # 120 / 50 = 2.4 shares
        assert order.shares == -2

    def test_sell_capped_at_held_shares(self, builder: OrderBuilder) -> None:
        """Test a sell never exceeds the shares held."""
        allocations = [make_allocation("VTI", target=0.0, current=130.0, price=50.0)]
        holdings = {"VTI": Holding("VTI", shares=2.6, price=50.0)}

        (order,) = builder.build(allocations, make_result({}), holdings, 130.0)

        # 2.6 shares round up to 3, more than held
        assert order.shares == -2.6
        assert order.final_value == pytest.approx(0.0)

    def test_solver_deviation_preferred(self, builder: OrderBuilder) -> None:
        """Test a solver-provided deviation replaces the computed one."""
        allocations = [make_allocation("VEA", target=2000.0, current=0.0, price=50.0)]
        result = make_result({"VEA": 39}, deviations={"VEA": 0.42})

        (order,) = builder.build(allocations, result, {}, 4000.0)

        assert order.deviation_percentage == 0.42

    def test_hold_uses_solver_final_value_and_cost(self, builder: OrderBuilder) -> None:
        """Test a HOLD order reports the solver's final value and purchase cost."""
        allocations = [make_allocation("VTI", target=1000.0, current=1000.0, price=100.0)]
        holdings = {"VTI": Holding("VTI", shares=10, price=100.0)}
        result = make_result(
            {"VTI": 0},
            strategy_used="backend-optimization",
            final_values={"VTI": 1100.0},
            purchase_costs={"VTI": 100.0},
        )

        (order,) = builder.build(allocations, result, holdings, 2000.0)

        assert order.action == OrderAction.HOLD
        assert order.shares == 0
        assert order.final_value == 1100.0
        assert order.difference == 100.0
        assert order.deviation_percentage == pytest.approx(5.0)

    def test_buy_and_sell_ignore_solver_final_values(self, builder: OrderBuilder) -> None:
        """Test BUY and SELL values follow the whole shares actually traded."""
        allocations = [
            make_allocation("VEA", target=2000.0, current=0.0, price=50.0),
            make_allocation("VTI", target=2000.0, current=2500.0, price=250.0),
        ]
        holdings = {"VTI": Holding("VTI", shares=10, price=250.0)}
        result = make_result(
            {"VEA": 39},
            final_values={"VEA": 9999.0, "VTI": 9999.0},
            purchase_costs={"VEA": 9999.0, "VTI": 9999.0},
        )

        vea, vti = builder.build(allocations, result, holdings, 4500.0)

        assert (vea.final_value, vea.difference) == (1950.0, 1950.0)
        assert (vti.final_value, vti.difference) == (2000.0, -500.0)

    def test_reason(self, builder: OrderBuilder) -> None:
        """Test reasons name the target percentage."""
        allocations = [
            make_allocation("VEA", target=2000.0, current=0.0, price=50.0, percent=48.0)
        ]

        (order,) = builder.build(allocations, make_result({"VEA": 1}), {}, 4000.0)

        assert order.reason == "Increase position to 48.0%"


class TestLiquidation:
    """Test cases for the liquidation sweep."""

    def test_liquidate_untargeted_holding(self, builder: OrderBuilder) -> None:
        """Test a held ticker outside the target set is fully sold."""
        allocations = [make_allocation("VTI", target=100.0, current=0.0, price=10.0)]
        holdings = {"ZZZ": Holding("ZZZ", shares=5, price=20.0)}

        orders = builder.build(allocations, make_result({"VTI": 10}), holdings, 200.0)

        assert [o.ticker for o in orders] == ["VTI", "ZZZ"]
        zzz = orders[1]
        assert zzz.action == OrderAction.SELL
        assert zzz.shares == -5
        assert zzz.target_value == 0.0
        assert zzz.current_value == 100.0
        assert zzz.final_value == 0.0
        assert zzz.difference == -100.0
        assert zzz.deviation_percentage == -100.0

    def test_reason_outside_universe(self, builder: OrderBuilder) -> None:
        """Test liquidation reason for tickers outside the universe."""
        holdings = {"ZZZ": Holding("ZZZ", shares=5, price=20.0)}

        (order,) = builder.liquidation_orders(holdings, targeted=set(), universe={"VTI"})

        assert order.reason == "Liquidate: not in ETF universe"

    def test_reason_dropped_from_selection(self, builder: OrderBuilder) -> None:
        """Test liquidation reason for universe tickers that lost momentum."""
        holdings = {"VWO": Holding("VWO", shares=3, price=44.0)}

        (order,) = builder.liquidation_orders(holdings, targeted={"VTI"}, universe={"VTI", "VWO"})

        assert order.reason == "Liquidate: dropped from momentum selection"

    def test_zero_share_holding_skipped(self, builder: OrderBuilder) -> None:
        """Test empty positions produce no liquidation order."""
        holdings = {"ZZZ": Holding("ZZZ", shares=0, price=20.0)}

        assert builder.liquidation_orders(holdings, targeted=set()) == []

    def test_fractional_holding(self, builder: OrderBuilder) -> None:
        """Test fractional positions are liquidated exactly."""
        holdings = {"ZZZ": Holding("ZZZ", shares=2.5, price=20.0)}

        (order,) = builder.liquidation_orders(holdings, targeted=set())

        assert order.shares == -2.5
        assert order.difference == -50.0

    def test_tickers_unique(self, builder: OrderBuilder) -> None:
        """Test targeted holdings are not liquidated a second time."""
        allocations = [make_allocation("VTI", target=100.0, current=250.0, price=25.0)]
        holdings = {
            "VTI": Holding("VTI", shares=10, price=25.0),
            "ZZZ": Holding("ZZZ", shares=1, price=20.0),
        }

        orders = builder.build(allocations, make_result({}), holdings, 270.0)

        tickers = [o.ticker for o in orders]
        assert len(tickers) == len(set(tickers))
        assert tickers == ["VTI", "ZZZ"]


class TestDeviationPercentage:
    """Test cases for deviation_percentage."""

    def test_deviation(self) -> None:
        """Test deviation is final minus target share of total."""
        assert deviation_percentage(1950.0, 2000.0, 4000.0) == pytest.approx(-1.25)

    def test_zero_total(self) -> None:
        """Test deviation is zero for an empty portfolio."""
        assert deviation_percentage(0.0, 0.0, 0.0) == 0.0

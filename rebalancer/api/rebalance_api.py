"""User-friendly Rebalance API.

This module wires the rebalancing pipeline together:

TargetSetCalculator → DifferenceCalculator → BudgetAggregator →
ExternalOptimizerAdapter → (local FallbackOrchestrator on failure) →
OrderBuilder
"""

import threading
from typing import Any, Dict, List, Optional, Set

import pandas as pd

from rebalancer.optimization.solver import ExternalOptimizerAdapter, SolverClient
from rebalancer.portfolio.base import (
    AllocationResult,
    OrderAction,
    PromotionStrategy,
    RebalanceRequest,
    RebalanceResult,
    RebalancingOrder,
)
from rebalancer.portfolio.budget import BudgetAggregator
from rebalancer.portfolio.fallback import FallbackOrchestrator
from rebalancer.portfolio.orders import OrderBuilder
from rebalancer.portfolio.targets import (
    DifferenceCalculator,
    PriceLookup,
    TargetSetCalculator,
)
from rebalancer.utils.config import RebalanceSettings
from rebalancer.utils.logging import get_logger, log_with_context

logger = get_logger(__name__)


class AllocationCommit:
    """First-wins holder for the allocation of a single run.

    Once an allocation is committed, later offers (a late or duplicate
    optimizer answer arriving after the local fallback) are discarded.
    RebalanceAPI.rebalance creates one per run; callers that query the
    optimizer on their own thread pass a shared instance to rebalance()
    so whichever allocation lands first is the one turned into orders.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._result: Optional[AllocationResult] = None
        self._source: Optional[str] = None

    def commit(self, result: AllocationResult, source: str) -> AllocationResult:
        """Commit result if nothing is committed yet; return the committed one."""
        with self._lock:
            if self._result is None:
                self._result = result
                self._source = source
            elif result is not self._result:
                logger.warning(
                    "Discarding %s allocation; %s allocation already committed",
                    source,
                    self._source,
                )
            return self._result

    @property
    def source(self) -> Optional[str]:
        return self._source

    @property
    def committed(self) -> bool:
        return self._result is not None


class RebalanceAPI:
    """High-level API for budget-constrained rebalancing.

    Example:
        >>> from rebalancer.api.rebalance_api import RebalanceAPI
        >>> from rebalancer.portfolio.base import Holding, MomentumScore, RebalanceRequest
        >>>
        >>> api = RebalanceAPI()
        >>> request = RebalanceRequest(
        ...     momentum={"VTI": MomentumScore(0.12, True), "VEA": MomentumScore(0.05, True)},
        ...     holdings={"VTI": Holding("VTI", shares=10, price=250.0)},
        ...     extra_cash=1000.0,
        ...     prices={"VEA": 50.0},
        ... )
        >>> result = api.rebalance(request)
        >>> api.format_orders(result.orders)
    """

    def __init__(
        self,
        settings: Optional[RebalanceSettings] = None,
        solver_client: Optional[SolverClient] = None,
        price_lookup: Optional[PriceLookup] = None,
    ):
        """Initialize RebalanceAPI.

        Args:
            settings: Rebalance settings (defaults to RebalanceSettings())
            solver_client: Optimizer client (defaults to one built from settings)
            price_lookup: Quote source for target tickers without a price
        """
        self.settings = settings or RebalanceSettings()
        if solver_client is None:
            solver_client = SolverClient.from_settings(self.settings.solver)
        self.price_lookup = price_lookup

        self.target_calculator = TargetSetCalculator(
            top_assets=self.settings.top_assets,
            alternative_asset=self.settings.alternative_asset,
            alternative_allocation=self.settings.alternative_allocation,
        )
        self.difference_calculator = DifferenceCalculator(self.settings.default_price)
        self.budget_aggregator = BudgetAggregator()
        self.optimizer = ExternalOptimizerAdapter(
            client=solver_client,
            alternative_asset=self.settings.alternative_asset,
            allowed_deviation=self.settings.allowed_deviation,
            alternative_allowed_deviation=self.settings.alternative_allowed_deviation,
            strategy_hint=self.settings.solver.strategy_hint,
        )
        self.order_builder = OrderBuilder()

        logger.debug(
            "RebalanceAPI initialized (solver: %s)",
            "enabled" if solver_client else "disabled",
        )

    def rebalance(
        self,
        request: RebalanceRequest,
        commit: Optional[AllocationCommit] = None,
    ) -> RebalanceResult:
        """Run one rebalance and return the order list.

        Args:
            request: Immutable rebalance input
            commit: Shared first-wins holder; if another allocation is
                committed first, orders are built from that one

        Returns:
            RebalanceResult

        Raises:
            InvalidInputError: If the input is rejected
            NoEligibleAssetsError: If no asset qualifies for the target set
        """
        strategy = request.strategy or self.settings.strategy
        universe = self._universe_tickers(request)
        total_value = request.total_portfolio_value

        targets = self.target_calculator.select(request.momentum, universe)
        allocations = self.difference_calculator.calculate(
            targets,
            request.holdings,
            request.prices,
            total_value,
            price_lookup=self.price_lookup,
        )
        budget = self.budget_aggregator.aggregate(allocations, request.extra_cash)
        candidates = budget.candidates()

        logger.info(
            "Rebalancing %d targets: portfolio $%.2f, budget $%.2f",
            len(allocations),
            total_value,
            budget.available_budget,
        )

        if commit is None:
            commit = AllocationCommit()
        solver_result = self.optimizer.optimize(
            allocations, candidates, request.holdings, request.extra_cash
        )
        if solver_result is not None:
            allocation = commit.commit(solver_result, "solver")
        else:
            orchestrator = FallbackOrchestrator(strategy)
            local_result = orchestrator.allocate(
                candidates, budget.available_budget, request.momentum
            )
            allocation = commit.commit(local_result, "local")

        orders = self.order_builder.build(
            allocations,
            allocation,
            request.holdings,
            total_value,
            universe=universe,
        )

        log_with_context(
            logger,
            "info",
            "Rebalance complete",
            source=commit.source,
            strategy=allocation.strategy_used,
            orders=len(orders),
            promotions=allocation.promotions,
            leftover=round(allocation.leftover_budget, 2),
        )

        return RebalanceResult(
            orders=orders,
            leftover_budget=allocation.leftover_budget,
            promotions=allocation.promotions,
            strategy_used=allocation.strategy_used,
            source=commit.source,
            available_budget=budget.available_budget,
            total_portfolio_value=total_value,
            target_percentages=dict(targets),
        )

    def _universe_tickers(self, request: RebalanceRequest) -> Set[str]:
        return self.settings.universe_tickers(request.universe or None)

    def format_orders(self, orders: List[RebalancingOrder]) -> pd.DataFrame:
        """Format orders as a DataFrame for display.

        Args:
            orders: List of RebalancingOrder objects

        Returns:
            DataFrame with one row per order, in order-list order
        """
        columns = [
            "ticker",
            "action",
            "shares",
            "target_value",
            "current_value",
            "final_value",
            "difference",
            "deviation_pct",
            "reason",
        ]
        if not orders:
            return pd.DataFrame(columns=columns)

        return pd.DataFrame(
            [
                {
                    "ticker": o.ticker,
                    "action": o.action.value,
                    "shares": o.shares,
                    "target_value": o.target_value,
                    "current_value": o.current_value,
                    "final_value": o.final_value,
                    "difference": o.difference,
                    "deviation_pct": o.deviation_percentage,
                    "reason": o.reason,
                }
                for o in orders
            ],
            columns=columns,
        )

    def summarize(self, result: RebalanceResult) -> Dict[str, Any]:
        """Calculate summary metrics for a rebalance result.

        Returns:
            Dictionary with order counts, traded amounts and budget usage
        """
        orders = result.orders
        buy_amount = sum(o.difference for o in orders if o.action == OrderAction.BUY)
        sell_amount = sum(-o.difference for o in orders if o.action == OrderAction.SELL)
        budget = result.available_budget
        utilization = (budget - result.leftover_budget) / budget if budget > 0 else 0.0

        return {
            "order_count": len(orders),
            "buy_order_count": sum(1 for o in orders if o.action == OrderAction.BUY),
            "sell_order_count": sum(1 for o in orders if o.action == OrderAction.SELL),
            "hold_order_count": sum(1 for o in orders if o.action == OrderAction.HOLD),
            "total_buy_amount": buy_amount,
            "total_sell_amount": sell_amount,
            "available_budget": budget,
            "leftover_budget": result.leftover_budget,
            "budget_utilization": utilization,
            "promotions": result.promotions,
            "strategy_used": result.strategy_used,
            "source": result.source,
        }


def get_strategy_description(strategy: PromotionStrategy | str) -> str:
    """Human-readable description of a promotion strategy."""
    try:
        return PromotionStrategy.from_name(strategy).description
    except ValueError:
        return "Unknown strategy"

"""Budget aggregation and whole-share floor allocation.

The available budget for buying is the extra cash plus the proceeds of
every asset that is above target. Buy candidates first receive the
whole shares their dollar difference covers (their floor); if those
floors cost more than the budget, they are scaled down proportionally.
"""

import math
from dataclasses import dataclass, replace
from typing import List, Sequence

from rebalancer.portfolio.base import BuyCandidate
from rebalancer.portfolio.targets import TargetAllocation
from rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BudgetSummary:
    """Buy/sell/hold partition of the target set.

    Attributes:
        buys: Assets below target (difference > 0)
        sells: Assets above target (difference < 0)
        holds: Assets exactly at target
        total_buy_amount: Sum of positive differences
        total_sell_amount: Sum of absolute negative differences
        available_budget: Extra cash plus total_sell_amount
    """

    buys: List[TargetAllocation]
    sells: List[TargetAllocation]
    holds: List[TargetAllocation]
    total_buy_amount: float
    total_sell_amount: float
    available_budget: float

    def candidates(self) -> List[BuyCandidate]:
        """Build buy candidates for every asset below target."""
        return [
            BuyCandidate.from_difference(
                ticker=a.ticker,
                difference=a.difference,
                price=a.price,
                target_value=a.target_value,
                current_value=a.current_value,
            )
            for a in self.buys
        ]


class BudgetAggregator:
    """Partitions target assets and computes the total buying budget."""

    def aggregate(
        self,
        allocations: Sequence[TargetAllocation],
        extra_cash: float,
    ) -> BudgetSummary:
        """Partition allocations and compute the available budget.

        Args:
            allocations: Target allocations from DifferenceCalculator
            extra_cash: Additional cash supplied for this run

        Returns:
            BudgetSummary
        """
        buys = [a for a in allocations if a.difference > 0]
        sells = [a for a in allocations if a.difference < 0]
        holds = [a for a in allocations if a.difference == 0]

        total_buy = sum(a.difference for a in buys)
        total_sell = sum(abs(a.difference) for a in sells)

        logger.debug(
            "Budget: buys=%s sells=%s holds=%s",
            [a.ticker for a in buys],
            [a.ticker for a in sells],
            [a.ticker for a in holds],
        )

        return BudgetSummary(
            buys=buys,
            sells=sells,
            holds=holds,
            total_buy_amount=total_buy,
            total_sell_amount=total_sell,
            available_budget=extra_cash + total_sell,
        )


@dataclass(frozen=True)
class FloorAllocation:
    """Result of floor allocation.

    Attributes:
        candidates: Candidates with (possibly scaled) floor shares
        total_floor_cost: Cost of all floor shares
        leftover_budget: available_budget - total_floor_cost
        scale_factor: Applied scale factor (1.0 when floors fit the budget)
    """

    candidates: List[BuyCandidate]
    total_floor_cost: float
    leftover_budget: float
    scale_factor: float = 1.0

    @property
    def floor_shares(self) -> dict:
        return {c.ticker: c.floor_shares for c in self.candidates}


class FloorAllocator:
    """Fits whole-share floor allocations inside the available budget."""

    def allocate(
        self,
        candidates: Sequence[BuyCandidate],
        available_budget: float,
    ) -> FloorAllocation:
        """Compute floor allocations, scaling them down on budget shortfall.

        If the floors cost more than the budget, every floor is multiplied by
        available_budget / total_floor_cost and rounded down, so the scaled
        cost never exceeds the budget.

        Args:
            candidates: Buy candidates
            available_budget: Budget for buying (>= 0)

        Returns:
            FloorAllocation
        """
        candidates = list(candidates)
        total_floor_cost = sum(c.floor_cost for c in candidates)
        scale_factor = 1.0

        if total_floor_cost > available_budget:
            scale_factor = available_budget / total_floor_cost
            candidates = [
                replace(c, floor_shares=math.floor(c.floor_shares * scale_factor))
                for c in candidates
            ]
            logger.info(
                "Floor cost $%.2f exceeds budget $%.2f, scaling floors by %.4f",
                total_floor_cost,
                available_budget,
                scale_factor,
            )
            total_floor_cost = sum(c.floor_cost for c in candidates)

        return FloorAllocation(
            candidates=candidates,
            total_floor_cost=total_floor_cost,
            leftover_budget=available_budget - total_floor_cost,
            scale_factor=scale_factor,
        )

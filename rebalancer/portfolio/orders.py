"""Conversion of allocation results into rebalancing orders.

Orders for the target set come first, in target-set order, followed by
forced liquidations of holdings that are no longer targeted. Each ticker
appears at most once.
"""

import math
from typing import Collection, List, Mapping, Optional, Sequence

from rebalancer.portfolio.base import (
    AllocationResult,
    Holding,
    OrderAction,
    RebalancingOrder,
)
from rebalancer.portfolio.targets import TargetAllocation
from rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


class OrderBuilder:
    """Builds BUY/SELL/HOLD order records for a rebalance run."""

    def build(
        self,
        allocations: Sequence[TargetAllocation],
        result: AllocationResult,
        holdings: Mapping[str, Holding],
        total_value: float,
        universe: Optional[Collection[str]] = None,
    ) -> List[RebalancingOrder]:
        """Build the full order list.

        Args:
            allocations: Target allocations, in target-set order
            result: Allocation result (local or solver)
            holdings: Current positions {ticker: Holding}
            total_value: Total portfolio value
            universe: ETF universe tickers, used to label liquidations

        Returns:
            Target-set orders followed by liquidation orders
        """
        orders = [
            self._target_order(allocation, result, total_value)
            for allocation in allocations
        ]
        targeted = {a.ticker for a in allocations}
        orders.extend(self.liquidation_orders(holdings, targeted, universe))

        sells = sum(1 for o in orders if o.action == OrderAction.SELL)
        buys = sum(1 for o in orders if o.action == OrderAction.BUY)
        logger.info(
            "Built %d orders (%d buy, %d sell, %d hold)",
            len(orders),
            buys,
            sells,
            len(orders) - buys - sells,
        )
        return orders

    def _target_order(
        self,
        allocation: TargetAllocation,
        result: AllocationResult,
        total_value: float,
    ) -> RebalancingOrder:
        price = allocation.price

        if allocation.difference > 0:
            action = OrderAction.BUY
            net_shares = result.final_shares.get(allocation.ticker, 0)
            realized = net_shares * price
            final_value = allocation.current_value + realized
            reason = f"Increase position to {allocation.target_percent:.1f}%"
        elif allocation.difference < 0:
            action = OrderAction.SELL
            desired = _round_half_up(abs(allocation.difference) / price)
            net_shares = -min(desired, allocation.current_shares)
            realized = -abs(net_shares) * price
            final_value = max(0.0, allocation.current_value - abs(net_shares) * price)
            reason = f"Reduce position to {allocation.target_percent:.1f}%"
        else:
            action = OrderAction.HOLD
            net_shares = 0
            realized = result.purchase_costs.get(allocation.ticker, 0.0)
            final_value = result.final_values.get(allocation.ticker, allocation.current_value)
            reason = "At target"

        deviation = result.deviations.get(allocation.ticker)
        if deviation is None:
            deviation = deviation_percentage(final_value, allocation.target_value, total_value)

        return RebalancingOrder(
            ticker=allocation.ticker,
            action=action,
            shares=net_shares,
            target_value=allocation.target_value,
            current_value=allocation.current_value,
            final_value=final_value,
            difference=realized,
            deviation_percentage=deviation,
            reason=reason,
        )

    def liquidation_orders(
        self,
        holdings: Mapping[str, Holding],
        targeted: Collection[str],
        universe: Optional[Collection[str]] = None,
    ) -> List[RebalancingOrder]:
        """Forced SELL orders for held tickers outside the target set.

        Holdings with zero shares produce no order.
        """
        orders = []
        for ticker, holding in holdings.items():
            if ticker in targeted or holding.shares <= 0:
                continue
            if universe is not None and ticker not in universe:
                reason = "Liquidate: not in ETF universe"
            else:
                reason = "Liquidate: dropped from momentum selection"
            logger.info(
                "Liquidating %s (%s shares @ $%.2f)", ticker, holding.shares, holding.price
            )
            orders.append(
                RebalancingOrder(
                    ticker=ticker,
                    action=OrderAction.SELL,
                    shares=-holding.shares,
                    target_value=0.0,
                    current_value=holding.value,
                    final_value=0.0,
                    difference=-holding.value,
                    deviation_percentage=-100.0,
                    reason=reason,
                )
            )
        return orders


def deviation_percentage(final_value: float, target_value: float, total_value: float) -> float:
    """Final minus target allocation, in percentage points of total value."""
    if total_value <= 0:
        return 0.0
    return (final_value / total_value * 100) - (target_value / total_value * 100)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)

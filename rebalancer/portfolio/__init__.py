"""Portfolio Rebalancing Layer.

This layer turns momentum scores and current holdings into whole-share
BUY/SELL/HOLD orders that fit inside the available budget.

Components:
- TargetSetCalculator: Momentum-based target universe selection
- DifferenceCalculator: Target versus current value per asset
- BudgetAggregator / FloorAllocator: Budget and whole-share floors
- compute_promotions: Greedy promotion strategies for leftover budget
- FallbackOrchestrator: Local primary + fallback allocation path
- OrderBuilder: Order records and liquidation sweep
"""

from rebalancer.portfolio.base import (
    AllocationResult,
    BuyCandidate,
    Holding,
    MomentumScore,
    OrderAction,
    PromotionStrategy,
    RebalanceRequest,
    RebalanceResult,
    RebalancingOrder,
    StrategyConfig,
)
from rebalancer.portfolio.budget import BudgetAggregator, FloorAllocator
from rebalancer.portfolio.fallback import FallbackOrchestrator
from rebalancer.portfolio.orders import OrderBuilder
from rebalancer.portfolio.promotion import compute_promotions
from rebalancer.portfolio.targets import DifferenceCalculator, TargetSetCalculator

__all__ = [
    "AllocationResult",
    "BuyCandidate",
    "Holding",
    "MomentumScore",
    "OrderAction",
    "PromotionStrategy",
    "RebalanceRequest",
    "RebalanceResult",
    "RebalancingOrder",
    "StrategyConfig",
    "TargetSetCalculator",
    "DifferenceCalculator",
    "BudgetAggregator",
    "FloorAllocator",
    "compute_promotions",
    "FallbackOrchestrator",
    "OrderBuilder",
]

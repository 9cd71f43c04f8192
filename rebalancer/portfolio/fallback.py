"""Local allocation path: floors, primary promotions, fallback promotions.

The fallback strategy runs on the same floor baseline as the primary
strategy, with only the budget the primary left unspent. Its promotions
are added to the primary result as deltas over the floor.
"""

from typing import Dict, Mapping, Optional, Sequence

from rebalancer.portfolio.base import (
    AllocationResult,
    BuyCandidate,
    MomentumScore,
    StrategyConfig,
)
from rebalancer.portfolio.budget import FloorAllocator
from rebalancer.portfolio.promotion import compute_promotions
from rebalancer.utils.logging import get_logger, log_with_context

logger = get_logger(__name__)


class FallbackOrchestrator:
    """Runs the local heuristic allocation for one budget.

    Example:
        >>> orchestrator = FallbackOrchestrator(StrategyConfig())
        >>> result = orchestrator.allocate(candidates, available_budget=1000.0)
        >>> result.final_shares
        {'VTI': 3, 'VEA': 5}
    """

    def __init__(
        self,
        config: Optional[StrategyConfig] = None,
        floor_allocator: Optional[FloorAllocator] = None,
    ):
        self.config = config or StrategyConfig()
        self.floor_allocator = floor_allocator or FloorAllocator()

    def allocate(
        self,
        candidates: Sequence[BuyCandidate],
        available_budget: float,
        momentum: Optional[Mapping[str, MomentumScore]] = None,
    ) -> AllocationResult:
        """Allocate the budget across buy candidates in whole shares.

        Args:
            candidates: Buy candidates
            available_budget: Extra cash plus sale proceeds
            momentum: Momentum scores for momentum-aware strategies

        Returns:
            AllocationResult with final_shares counting shares to buy
        """
        strategy_name = self.config.primary_strategy.value
        floors = self.floor_allocator.allocate(candidates, available_budget)
        floor_shares = floors.floor_shares

        if floors.leftover_budget <= 0:
            logger.debug("No budget left after floor allocation")
            return AllocationResult(
                final_shares=dict(floor_shares),
                leftover_budget=max(0.0, floors.leftover_budget),
                promotions=0,
                strategy_used=strategy_name,
            )

        prices = {c.ticker: c.price for c in floors.candidates}

        final_shares = compute_promotions(
            self.config.primary_strategy,
            floors.candidates,
            floors.leftover_budget,
            momentum,
            self.config.max_iterations,
        )
        remaining = available_budget - _spend(final_shares, prices)

        fallback = self.config.fallback_strategy
        if self.config.enable_fallback and remaining > 0 and fallback is not None:
            fallback_shares = compute_promotions(
                fallback,
                floors.candidates,
                remaining,
                momentum,
                self.config.max_iterations,
            )
            for ticker, shares in fallback_shares.items():
                final_shares[ticker] += shares - floor_shares[ticker]

        promotions = sum(final_shares[t] - floor_shares[t] for t in final_shares)
        leftover = max(0.0, available_budget - _spend(final_shares, prices))

        log_with_context(
            logger,
            "debug",
            "Local allocation complete",
            strategy=strategy_name,
            fallback=fallback.value if fallback else None,
            promotions=promotions,
            leftover=round(leftover, 2),
        )

        return AllocationResult(
            final_shares=final_shares,
            leftover_budget=leftover,
            promotions=promotions,
            strategy_used=strategy_name,
        )


def _spend(final_shares: Dict[str, int], prices: Mapping[str, float]) -> float:
    return sum(shares * prices[ticker] for ticker, shares in final_shares.items())

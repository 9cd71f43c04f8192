"""Greedy promotion strategies for leftover budget.

A promotion buys one whole share beyond an asset's floor allocation.
All strategies start from the floor shares and differ only in the order
in which candidates are considered:

- remainder-first: largest fractional remainder first, one pass, at most
  one extra share per asset
- multi-share / price-efficient: cheapest first, repeated
- momentum-weighted: highest momentum per dollar first, repeated
- hybrid: 0.7 x momentum + 0.3 x (1 / price), repeated

Repeated strategies restart from the top of the sorted list after every
promotion, so the first affordable candidate always wins.
"""

from typing import Callable, Dict, List, Mapping, Optional, Sequence

from rebalancer.portfolio.base import BuyCandidate, MomentumScore, PromotionStrategy
from rebalancer.utils.exceptions import InvalidInputError
from rebalancer.utils.logging import get_logger

logger = get_logger(__name__)

MOMENTUM_WEIGHT = 0.7
PRICE_WEIGHT = 0.3


def compute_promotions(
    kind: PromotionStrategy,
    candidates: Sequence[BuyCandidate],
    budget: float,
    momentum: Optional[Mapping[str, MomentumScore]] = None,
    max_iterations: Optional[int] = None,
) -> Dict[str, int]:
    """Spend budget on extra whole shares using the given strategy.

    Args:
        kind: Promotion strategy
        candidates: Buy candidates holding the floor shares to start from
        budget: Budget available for promotions
        momentum: Momentum scores, used by momentum-weighted and hybrid
        max_iterations: Optional bound on outer iterations of repeated loops

    Returns:
        Final shares {ticker: floor + promotions}

    Raises:
        InvalidInputError: If a candidate has a nonpositive price
    """
    for candidate in candidates:
        if not candidate.price > 0:
            raise InvalidInputError(
                f"price must be positive for {candidate.ticker}, got {candidate.price}"
            )

    momentum = momentum or {}

    if kind == PromotionStrategy.REMAINDER_FIRST:
        ordered = sorted(candidates, key=lambda c: c.remainder, reverse=True)
        final_shares = _promote_single_pass(ordered, budget)
    else:
        sort_key = _sort_key(kind, momentum)
        ordered = sorted(candidates, key=sort_key)
        final_shares = _promote_repeatedly(ordered, budget, max_iterations)

    logger.debug(
        "%s promotions: %s",
        kind.label,
        {c.ticker: final_shares[c.ticker] - c.floor_shares for c in candidates},
    )
    return final_shares


def _sort_key(
    kind: PromotionStrategy,
    momentum: Mapping[str, MomentumScore],
) -> Callable[[BuyCandidate], float]:
    """Ascending sort key for the repeated strategies."""
    if kind in (PromotionStrategy.MULTI_SHARE, PromotionStrategy.PRICE_EFFICIENT):
        return lambda c: c.price
    if kind == PromotionStrategy.MOMENTUM_WEIGHTED:
        return lambda c: -(_momentum_of(c.ticker, momentum) / c.price)
    if kind == PromotionStrategy.HYBRID:
        return lambda c: -(
            _momentum_of(c.ticker, momentum) * MOMENTUM_WEIGHT + (1 / c.price) * PRICE_WEIGHT
        )
    raise InvalidInputError(f"Unsupported promotion strategy: {kind!r}")


def _momentum_of(ticker: str, momentum: Mapping[str, MomentumScore]) -> float:
    score = momentum.get(ticker)
    return score.average if score is not None else 0.0


def _promote_single_pass(
    ordered: List[BuyCandidate],
    budget: float,
) -> Dict[str, int]:
    final_shares = {c.ticker: c.floor_shares for c in ordered}
    remaining = budget

    for candidate in ordered:
        if remaining >= candidate.price:
            final_shares[candidate.ticker] += 1
            remaining -= candidate.price

    return final_shares


def _promote_repeatedly(
    ordered: List[BuyCandidate],
    budget: float,
    max_iterations: Optional[int],
) -> Dict[str, int]:
    final_shares = {c.ticker: c.floor_shares for c in ordered}
    remaining = budget
    iterations = 0

    while remaining > 0:
        if max_iterations is not None and iterations >= max_iterations:
            logger.warning(
                "Promotion stopped after %d iterations with $%.2f remaining",
                iterations,
                remaining,
            )
            break
        iterations += 1

        # First affordable candidate in sort order, not round robin
        chosen = next((c for c in ordered if c.price <= remaining), None)
        if chosen is None:
            break
        final_shares[chosen.ticker] += 1
        remaining -= chosen.price

    return final_shares

"""Target universe selection and per-asset value differences.

Algorithm:
1. Keep tickers with positive absolute momentum that belong to the ETF universe
2. Rank them by average momentum and keep the top N
3. Add the alternative asset as its own bucket when its momentum is positive
4. Split the remaining percentage equally across the traditional assets
5. Compare each target value with the current holding value
"""

from dataclasses import dataclass
from typing import Callable, Collection, Dict, List, Mapping, Optional

from rebalancer.portfolio.base import Holding, MomentumScore
from rebalancer.utils.exceptions import NoEligibleAssetsError
from rebalancer.utils.logging import get_logger

logger = get_logger(__name__)

# Quote source for a single ticker; may raise PriceLookupError
PriceLookup = Callable[[str], float]


@dataclass(frozen=True)
class TargetAllocation:
    """Target versus current value for one asset in the target set.

    Attributes:
        ticker: Ticker symbol
        target_percent: Target allocation in percent of portfolio value
        target_value: Target dollar value
        current_value: Current dollar value (0 if not held)
        difference: target_value - current_value
        price: Resolved price per share
        current_shares: Shares currently held
    """

    ticker: str
    target_percent: float
    target_value: float
    current_value: float
    difference: float
    price: float
    current_shares: float = 0.0


class TargetSetCalculator:
    """Selects the target universe and assigns equal-weight percentages.

    Example:
        >>> calculator = TargetSetCalculator(top_assets=2, alternative_asset="IBIT",
        ...                                  alternative_allocation=4)
        >>> momentum = {
        ...     "VTI": MomentumScore(0.12, True),
        ...     "VEA": MomentumScore(0.08, True),
        ...     "BND": MomentumScore(-0.01, False),
        ...     "IBIT": MomentumScore(0.30, True),
        ... }
        >>> calculator.select(momentum, {"VTI", "VEA", "BND", "IBIT"})
        {'VTI': 48.0, 'VEA': 48.0, 'IBIT': 4.0}
    """

    def __init__(
        self,
        top_assets: int = 4,
        alternative_asset: Optional[str] = None,
        alternative_allocation: float = 0.0,
    ):
        self.top_assets = top_assets
        self.alternative_asset = alternative_asset
        self.alternative_allocation = alternative_allocation

    def select(
        self,
        momentum: Mapping[str, MomentumScore],
        universe: Collection[str],
    ) -> Dict[str, float]:
        """Select target tickers and their target percentages.

        Args:
            momentum: Momentum scores {ticker: MomentumScore}
            universe: Tickers eligible for the traditional selection

        Returns:
            Ordered {ticker: target_percent}; traditional assets first,
            ranked by momentum, then the alternative asset if included

        Raises:
            NoEligibleAssetsError: If no asset qualifies
        """
        if not momentum:
            raise NoEligibleAssetsError("No momentum data available; calculate momentum first")

        ranked = sorted(
            (
                (ticker, score)
                for ticker, score in momentum.items()
                if score.absolute_momentum
                and ticker in universe
                and ticker != self.alternative_asset
            ),
            key=lambda item: item[1].average,
            reverse=True,
        )
        selected = [ticker for ticker, _ in ranked[: self.top_assets]]

        include_alternative = self._include_alternative(momentum)
        if not selected and not include_alternative:
            raise NoEligibleAssetsError("No ETFs with positive momentum found")

        alternative_percent = self.alternative_allocation if include_alternative else 0.0
        per_asset = (100.0 - alternative_percent) / len(selected) if selected else 0.0

        targets = {ticker: per_asset for ticker in selected}
        if include_alternative:
            targets[self.alternative_asset] = alternative_percent

        logger.debug(
            "Target set: %s (%.2f%% each, alternative %.2f%%)",
            list(targets),
            per_asset,
            alternative_percent,
        )
        return targets

    def _include_alternative(self, momentum: Mapping[str, MomentumScore]) -> bool:
        if not self.alternative_asset or self.alternative_allocation <= 0:
            return False
        score = momentum.get(self.alternative_asset)
        return bool(score and score.absolute_momentum)


class DifferenceCalculator:
    """Computes target value, current value and signed difference per asset."""

    def __init__(self, default_price: float = 1.0):
        self.default_price = default_price

    def calculate(
        self,
        targets: Mapping[str, float],
        holdings: Mapping[str, Holding],
        prices: Mapping[str, float],
        total_value: float,
        price_lookup: Optional[PriceLookup] = None,
    ) -> List[TargetAllocation]:
        """Compute one TargetAllocation per target ticker, in target order.

        Args:
            targets: Ordered {ticker: target_percent}
            holdings: Current positions {ticker: Holding}
            prices: Known quotes {ticker: price}
            total_value: Total portfolio value (holdings plus extra cash)
            price_lookup: Optional quote source for tickers without a price

        Returns:
            List of TargetAllocation
        """
        allocations = []
        for ticker, percent in targets.items():
            holding = holdings.get(ticker)
            target_value = total_value * percent / 100
            current_value = holding.value if holding else 0.0
            allocation = TargetAllocation(
                ticker=ticker,
                target_percent=percent,
                target_value=target_value,
                current_value=current_value,
                difference=target_value - current_value,
                price=self.resolve_price(ticker, holdings, prices, price_lookup),
                current_shares=holding.shares if holding else 0.0,
            )
            logger.debug(
                "%s: target=%.2f current=%.2f diff=%.2f price=%.4f",
                ticker,
                allocation.target_value,
                allocation.current_value,
                allocation.difference,
                allocation.price,
            )
            allocations.append(allocation)
        return allocations

    def resolve_price(
        self,
        ticker: str,
        holdings: Mapping[str, Holding],
        prices: Mapping[str, float],
        price_lookup: Optional[PriceLookup] = None,
    ) -> float:
        """Resolve a price: holding, then quotes, then lookup, then default.

        A failing or invalid lookup never aborts the run; the default price
        is used instead.
        """
        holding = holdings.get(ticker)
        if holding is not None:
            return holding.price
        if ticker in prices:
            return prices[ticker]
        if price_lookup is not None:
            try:
                price = float(price_lookup(ticker))
                if price > 0:
                    return price
                logger.warning("Invalid price %s for %s, using default", price, ticker)
            except Exception as e:
                logger.warning("Price lookup failed for %s: %s", ticker, e)
        return self.default_price

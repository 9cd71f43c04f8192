"""Core data model for budget-constrained rebalancing.

This module defines the values that flow through a rebalance run:
inputs (holdings, momentum scores, strategy configuration), per-run
intermediates (buy candidates, allocation results) and outputs
(rebalancing orders). Every value is created fresh per run; only
holdings outlive a run, and the engine never mutates them.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from rebalancer.utils.exceptions import InvalidInputError


class OrderAction(Enum):
    """Order action types."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class PromotionStrategy(Enum):
    """Greedy strategies for spending leftover budget on whole shares."""

    REMAINDER_FIRST = "remainder-first"
    MULTI_SHARE = "multi-share"
    PRICE_EFFICIENT = "price-efficient"
    MOMENTUM_WEIGHTED = "momentum-weighted"
    HYBRID = "hybrid"

    @property
    def label(self) -> str:
        return _STRATEGY_LABELS[self]

    @property
    def description(self) -> str:
        return _STRATEGY_DESCRIPTIONS[self]

    @classmethod
    def from_name(cls, name: Any) -> "PromotionStrategy":
        """Parse a strategy from its config name.

        Accepts the enum itself, "multi-share", "multi_share" or "MULTI_SHARE".

        Raises:
            InvalidInputError: If the name is unknown
        """
        if isinstance(name, cls):
            return name
        normalized = str(name).strip().lower().replace("_", "-")
        for strategy in cls:
            if strategy.value == normalized:
                return strategy
        valid = ", ".join(s.value for s in cls)
        raise InvalidInputError(
            f"Unknown promotion strategy '{name}'. Valid strategies: {valid}"
        )


_STRATEGY_LABELS = {
    PromotionStrategy.REMAINDER_FIRST: "Remainder-First",
    PromotionStrategy.MULTI_SHARE: "Multi-Share",
    PromotionStrategy.PRICE_EFFICIENT: "Price-Efficient",
    PromotionStrategy.MOMENTUM_WEIGHTED: "Momentum-Weighted",
    PromotionStrategy.HYBRID: "Hybrid",
}

_STRATEGY_DESCRIPTIONS = {
    PromotionStrategy.REMAINDER_FIRST: "Prioritize ETFs closest to target allocation percentages",
    PromotionStrategy.MULTI_SHARE: "Maximize total shares purchased, minimize leftover budget",
    PromotionStrategy.PRICE_EFFICIENT: "Prioritize cheaper ETFs for more share promotions",
    PromotionStrategy.MOMENTUM_WEIGHTED: "Prioritize ETFs with highest momentum scores",
    PromotionStrategy.HYBRID: "Balance momentum and price efficiency",
}


@dataclass(frozen=True)
class MomentumScore:
    """Externally computed momentum for one ticker.

    Attributes:
        average: Average momentum across lookback periods (ranking metric)
        absolute_momentum: True if the asset has positive absolute momentum
    """

    average: float
    absolute_momentum: bool

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MomentumScore":
        """Build from the external momentum payload {average, absoluteMomentum}."""
        absolute = data.get("absoluteMomentum", data.get("absolute_momentum", False))
        return cls(average=float(data.get("average", 0.0)), absolute_momentum=bool(absolute))


@dataclass(frozen=True)
class Holding:
    """A current position, read-only to the engine.

    Attributes:
        ticker: Ticker symbol
        shares: Number of shares held (>= 0)
        price: Latest price per share (> 0)
        name: Display name
    """

    ticker: str
    shares: float
    price: float
    name: str = ""

    def __post_init__(self) -> None:
        """Validate holding fields."""
        if not math.isfinite(self.shares) or self.shares < 0:
            raise InvalidInputError(
                f"shares must be non-negative for {self.ticker}, got {self.shares}"
            )
        if not math.isfinite(self.price) or self.price <= 0:
            raise InvalidInputError(
                f"price must be positive for {self.ticker}, got {self.price}"
            )

    @property
    def value(self) -> float:
        return self.shares * self.price

    @classmethod
    def from_dict(cls, ticker: str, data: Mapping[str, Any]) -> "Holding":
        """Build from the external holdings payload {shares, price, value, name}.

        The payload's value is ignored; it is always shares x price.

        Raises:
            InvalidInputError: If shares or price is not a number
        """
        return cls(
            ticker=ticker,
            shares=_as_number(data.get("shares", 0), "shares", ticker),
            price=_as_number(data.get("price", 0), "price", ticker),
            name=str(data.get("name", "") or ""),
        )


@dataclass(frozen=True)
class StrategyConfig:
    """Promotion strategy configuration, read-only during a run.

    Attributes:
        primary_strategy: Strategy applied to leftover budget after floors
        enable_fallback: Whether to run a second strategy on remaining budget
        fallback_strategy: Strategy used for the second pass (optional)
        max_iterations: Upper bound on outer promotion iterations
    """

    primary_strategy: PromotionStrategy = PromotionStrategy.MULTI_SHARE
    enable_fallback: bool = True
    fallback_strategy: Optional[PromotionStrategy] = PromotionStrategy.PRICE_EFFICIENT
    max_iterations: int = 1000

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not isinstance(self.primary_strategy, PromotionStrategy):
            raise InvalidInputError(
                f"primary_strategy must be a PromotionStrategy, got {self.primary_strategy!r}"
            )
        if self.fallback_strategy is not None and not isinstance(
            self.fallback_strategy, PromotionStrategy
        ):
            raise InvalidInputError(
                f"fallback_strategy must be a PromotionStrategy, got {self.fallback_strategy!r}"
            )
        if not isinstance(self.enable_fallback, bool):
            raise InvalidInputError(
                f"enable_fallback must be a bool, got {self.enable_fallback!r}"
            )
        if isinstance(self.max_iterations, bool) or not isinstance(self.max_iterations, int):
            raise InvalidInputError(
                f"max_iterations must be an int, got {self.max_iterations!r}"
            )
        if self.max_iterations < 1:
            raise InvalidInputError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )


@dataclass(frozen=True)
class BuyCandidate:
    """An asset that needs buying, with its whole-share breakdown.

    Attributes:
        ticker: Ticker symbol
        exact_shares: Fractional shares covering the dollar difference
        floor_shares: Whole shares before promotion
        remainder: Fractional part of exact_shares
        price: Price per share
        target_value: Target dollar value
        current_value: Current dollar value
        difference: target_value - current_value
    """

    ticker: str
    exact_shares: float
    floor_shares: int
    remainder: float
    price: float
    target_value: float
    current_value: float
    difference: float

    @classmethod
    def from_difference(
        cls,
        ticker: str,
        difference: float,
        price: float,
        target_value: float,
        current_value: float,
    ) -> "BuyCandidate":
        """Derive exact, floor and remainder shares from a dollar difference."""
        exact_shares = max(0.0, difference) / price
        floor_shares = math.floor(exact_shares)
        return cls(
            ticker=ticker,
            exact_shares=exact_shares,
            floor_shares=floor_shares,
            remainder=exact_shares - floor_shares,
            price=price,
            target_value=target_value,
            current_value=current_value,
            difference=difference,
        )

    @property
    def floor_cost(self) -> float:
        return self.floor_shares * self.price


@dataclass
class AllocationResult:
    """Whole shares to buy per asset after budget allocation.

    Attributes:
        final_shares: Shares bought this run {ticker: shares >= 0}
        leftover_budget: Unspent budget (>= 0)
        promotions: Shares added beyond floor allocations
        strategy_used: Strategy name, or "backend-optimization" for the solver
        deviations: Solver-provided deviation percentage per ticker
        final_values: Solver-provided final value per ticker (used by HOLD orders)
        purchase_costs: Solver-provided cost of purchase per ticker (used by HOLD orders)
    """

    final_shares: Dict[str, int]
    leftover_budget: float
    promotions: int
    strategy_used: str
    deviations: Dict[str, float] = field(default_factory=dict)
    final_values: Dict[str, float] = field(default_factory=dict)
    purchase_costs: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class RebalancingOrder:
    """A single BUY/SELL/HOLD order record.

    Attributes:
        ticker: Ticker symbol
        action: BUY, SELL or HOLD
        shares: Signed net share delta (positive buys, negative sells)
        target_value: Target dollar value
        current_value: Current dollar value
        final_value: Dollar value after the order executes
        difference: Signed dollar delta realised by the order
        deviation_percentage: Final minus target allocation, in pct points
        reason: Why this order was generated (for logging/display)
    """

    ticker: str
    action: OrderAction
    shares: float
    target_value: float
    current_value: float
    final_value: float
    difference: float
    deviation_percentage: float
    reason: str = ""

    def __post_init__(self) -> None:
        """Validate sign of shares against the action."""
        if self.action == OrderAction.BUY and self.shares < 0:
            raise ValueError(f"BUY order for {self.ticker} has negative shares {self.shares}")
        if self.action == OrderAction.SELL and self.shares > 0:
            raise ValueError(f"SELL order for {self.ticker} has positive shares {self.shares}")
        if self.action == OrderAction.HOLD and self.shares != 0:
            raise ValueError(f"HOLD order for {self.ticker} has shares {self.shares}")


@dataclass(frozen=True)
class RebalanceRequest:
    """Immutable input of one rebalance run.

    Attributes:
        momentum: Momentum scores {ticker: MomentumScore}
        holdings: Current positions {ticker: Holding}
        extra_cash: Additional cash available for buying (>= 0)
        universe: ETF universe {category: [tickers]}; empty uses settings
        prices: Latest quotes {ticker: price} for assets not held
        strategy: Strategy configuration; None uses settings
    """

    momentum: Mapping[str, MomentumScore]
    holdings: Mapping[str, Holding] = field(default_factory=dict)
    extra_cash: float = 0.0
    universe: Mapping[str, Sequence[str]] = field(default_factory=dict)
    prices: Mapping[str, float] = field(default_factory=dict)
    strategy: Optional[StrategyConfig] = None

    def __post_init__(self) -> None:
        """Reject invalid input before any allocation."""
        if not math.isfinite(self.extra_cash) or self.extra_cash < 0:
            raise InvalidInputError(f"extra_cash must be non-negative, got {self.extra_cash}")
        for ticker, price in self.prices.items():
            if price is None or not math.isfinite(price) or price <= 0:
                raise InvalidInputError(f"price must be positive for {ticker}, got {price}")
        for ticker, holding in self.holdings.items():
            if holding.ticker != ticker:
                raise InvalidInputError(
                    f"holding keyed as {ticker} has ticker {holding.ticker}"
                )
        if self.strategy is not None and not isinstance(self.strategy, StrategyConfig):
            raise InvalidInputError(f"strategy must be a StrategyConfig, got {self.strategy!r}")

    @property
    def total_portfolio_value(self) -> float:
        """Sum of holding values plus extra cash."""
        return sum(h.value for h in self.holdings.values()) + self.extra_cash

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], strategy: Optional[StrategyConfig] = None
    ) -> "RebalanceRequest":
        """Build from a portfolio document.

        Expected layout:
            extra_cash: 1000
            holdings:
              VTI: {shares: 10, price: 250.0}
            momentum:
              VTI: {average: 0.12, absoluteMomentum: true}
            prices:
              VEA: 50.0
            universe:
              stocks: [VTI, VEA]

        Raises:
            InvalidInputError: If a section is malformed or a number is not numeric
        """
        if not isinstance(data, Mapping):
            raise InvalidInputError(f"portfolio must be a mapping, got {type(data).__name__}")

        sections = {}
        for key in ("holdings", "momentum", "prices", "universe"):
            section = data.get(key) or {}
            if not isinstance(section, Mapping):
                raise InvalidInputError(f"{key} must be a mapping, got {type(section).__name__}")
            sections[key] = section

        holdings = {}
        for ticker, values in sections["holdings"].items():
            if not isinstance(values or {}, Mapping):
                raise InvalidInputError(f"holding {ticker} must be a mapping, got {values!r}")
            holdings[ticker] = Holding.from_dict(ticker, values or {})
        momentum = {}
        for ticker, values in sections["momentum"].items():
            try:
                momentum[ticker] = MomentumScore.from_dict(values or {})
            except (AttributeError, TypeError, ValueError) as e:
                raise InvalidInputError(f"Invalid momentum for {ticker}: {e}") from e
        prices = {
            ticker: _as_number(price, "price", ticker)
            for ticker, price in sections["prices"].items()
        }

        return cls(
            momentum=momentum,
            holdings=holdings,
            extra_cash=_as_number(data.get("extra_cash", 0.0), "extra_cash"),
            universe=sections["universe"],
            prices=prices,
            strategy=strategy,
        )


def _as_number(value: Any, name: str, ticker: Optional[str] = None) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        where = f" for {ticker}" if ticker else ""
        raise InvalidInputError(f"{name} must be a number{where}, got {value!r}") from e


@dataclass(frozen=True)
class RebalanceResult:
    """Immutable output of one rebalance run.

    Attributes:
        orders: Target-set orders in target order, then liquidations
        leftover_budget: Unspent budget after allocation
        promotions: Shares added beyond floor allocations
        strategy_used: Strategy name or "backend-optimization"
        source: "solver" or "local"
        available_budget: Extra cash plus sale proceeds
        total_portfolio_value: Holdings value plus extra cash
        target_percentages: Target allocation {ticker: percent}
    """

    orders: List[RebalancingOrder]
    leftover_budget: float
    promotions: int
    strategy_used: str
    source: str
    available_budget: float
    total_portfolio_value: float
    target_percentages: Dict[str, float] = field(default_factory=dict)

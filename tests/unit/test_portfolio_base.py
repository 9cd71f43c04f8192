"""Unit tests for rebalancing data structures."""

import pytest

from rebalancer.portfolio.base import (
    AllocationResult,
    BuyCandidate,
    Holding,
    MomentumScore,
    OrderAction,
    PromotionStrategy,
    RebalanceRequest,
    RebalancingOrder,
    StrategyConfig,
)
from rebalancer.utils.exceptions import InvalidInputError


class TestPromotionStrategy:
    """Test cases for PromotionStrategy enum."""

    def test_values(self) -> None:
        """Test strategy config names."""
        assert [s.value for s in PromotionStrategy] == [
            "remainder-first",
            "multi-share",
            "price-efficient",
            "momentum-weighted",
            "hybrid",
        ]

    @pytest.mark.parametrize(
        "name",
        ["multi-share", "multi_share", "MULTI_SHARE", " Multi-Share "],
    )
    def test_from_name(self, name: str) -> None:
        """Test parsing accepts dashes, underscores and any case."""
        assert PromotionStrategy.from_name(name) == PromotionStrategy.MULTI_SHARE

    def test_from_name_enum_passthrough(self) -> None:
        """Test parsing returns enum members unchanged."""
        assert PromotionStrategy.from_name(PromotionStrategy.HYBRID) is PromotionStrategy.HYBRID

    def test_from_name_unknown(self) -> None:
        """Test unknown names raise InvalidInputError listing valid names."""
        with pytest.raises(InvalidInputError, match="Valid strategies: remainder-first"):
            PromotionStrategy.from_name("round-robin")

    def test_labels_and_descriptions(self) -> None:
        """Test every strategy has a label and description."""
        for strategy in PromotionStrategy:
            assert strategy.label
            assert strategy.description

        assert PromotionStrategy.HYBRID.description == "Balance momentum and price efficiency"


class TestMomentumScore:
    """Test cases for MomentumScore."""

    def test_from_dict_camel_case(self) -> None:
        """Test parsing the external payload."""
        score = MomentumScore.from_dict({"average": 0.12, "absoluteMomentum": True})

        assert score == MomentumScore(average=0.12, absolute_momentum=True)

    def test_from_dict_missing_fields(self) -> None:
        """Test missing fields default to zero and no absolute momentum."""
        assert MomentumScore.from_dict({}) == MomentumScore(0.0, False)


class TestHolding:
    """Test cases for Holding."""

    def test_value(self) -> None:
        """Test value is shares times price."""
        assert Holding("VTI", shares=10, price=250.0).value == 2500.0

    def test_fractional_shares(self) -> None:
        """Test fractional share counts are accepted."""
        assert Holding("VTI", shares=2.5, price=100.0).value == 250.0

    def test_negative_shares(self) -> None:
        """Test negative shares are rejected."""
        with pytest.raises(InvalidInputError, match="shares must be non-negative"):
            Holding("VTI", shares=-1, price=250.0)

    @pytest.mark.parametrize("shares", [float("nan"), float("inf")])
    def test_non_finite_shares(self, shares: float) -> None:
        """Test NaN and infinite share counts are rejected."""
        with pytest.raises(InvalidInputError, match="shares must be non-negative"):
            Holding("VTI", shares=shares, price=250.0)

    @pytest.mark.parametrize("price", [0.0, -5.0, float("nan"), float("inf")])
    def test_nonpositive_price(self, price: float) -> None:
        """Test zero, negative, NaN and infinite prices are rejected."""
        with pytest.raises(InvalidInputError, match="price must be positive"):
            Holding("VTI", shares=1, price=price)

    def test_from_dict_ignores_value(self) -> None:
        """Test the payload value field is recomputed."""
        holding = Holding.from_dict(
            "VTI", {"shares": 4, "price": 100.0, "value": 999.0, "name": "Total Market"}
        )

        assert holding.value == 400.0
        assert holding.name == "Total Market"

    def test_from_dict_non_numeric_shares(self) -> None:
        """Test non-numeric shares raise InvalidInputError, not ValueError."""
        with pytest.raises(InvalidInputError, match="shares must be a number for VTI"):
            Holding.from_dict("VTI", {"shares": "ten", "price": 100.0})


class TestStrategyConfig:
    """Test cases for StrategyConfig."""

    def test_defaults(self) -> None:
        """Test default configuration."""
        config = StrategyConfig()

        assert config.primary_strategy == PromotionStrategy.MULTI_SHARE
        assert config.enable_fallback is True
        assert config.fallback_strategy == PromotionStrategy.PRICE_EFFICIENT
        assert config.max_iterations == 1000

    def test_string_strategy_rejected(self) -> None:
        """Test strategies must be enum members."""
        with pytest.raises(InvalidInputError, match="primary_strategy"):
            StrategyConfig(primary_strategy="multi-share")

    def test_invalid_fallback(self) -> None:
        """Test fallback must be an enum member or None."""
        with pytest.raises(InvalidInputError, match="fallback_strategy"):
            StrategyConfig(fallback_strategy="hybrid")

    def test_non_bool_enable_fallback(self) -> None:
        """Test enable_fallback must be a bool."""
        with pytest.raises(InvalidInputError, match="enable_fallback"):
            StrategyConfig(enable_fallback="yes")

    @pytest.mark.parametrize("value", [0, -1])
    def test_invalid_max_iterations(self, value: int) -> None:
        """Test max_iterations must be positive."""
        with pytest.raises(InvalidInputError, match="max_iterations must be >= 1"):
            StrategyConfig(max_iterations=value)

    def test_bool_max_iterations(self) -> None:
        """Test bool is not accepted as max_iterations."""
        with pytest.raises(InvalidInputError, match="max_iterations must be an int"):
            StrategyConfig(max_iterations=True)


class TestBuyCandidate:
    """Test cases for BuyCandidate."""

    def test_from_difference(self) -> None:
        """Test exact, floor and remainder shares."""
        candidate = BuyCandidate.from_difference(
            "AAA", difference=29.0, price=10.0, target_value=129.0, current_value=100.0
        )

        assert candidate.exact_shares == pytest.approx(2.9)
        assert candidate.floor_shares == 2
        assert candidate.remainder == pytest.approx(0.9)
        assert candidate.floor_cost == 20.0

    def test_from_difference_negative(self) -> None:
        """Test a negative difference yields zero shares."""
        candidate = BuyCandidate.from_difference(
            "AAA", difference=-50.0, price=10.0, target_value=50.0, current_value=100.0
        )

        assert candidate.exact_shares == 0.0
        assert candidate.floor_shares == 0


class TestRebalancingOrder:
    """Test cases for RebalancingOrder."""

    def _order(self, action: OrderAction, shares: float) -> RebalancingOrder:
        return RebalancingOrder(
            ticker="VTI",
            action=action,
            shares=shares,
            target_value=1000.0,
            current_value=1000.0,
            final_value=1000.0,
            difference=0.0,
            deviation_percentage=0.0,
        )

    def test_valid_orders(self) -> None:
        """Test correctly signed orders are accepted."""
        assert self._order(OrderAction.BUY, 3).shares == 3
        assert self._order(OrderAction.SELL, -2).shares == -2
        assert self._order(OrderAction.HOLD, 0).shares == 0

    def test_buy_negative_shares(self) -> None:
        """Test BUY with negative shares is rejected."""
        with pytest.raises(ValueError, match="BUY order"):
            self._order(OrderAction.BUY, -1)

    def test_sell_positive_shares(self) -> None:
        """Test SELL with positive shares is rejected."""
        with pytest.raises(ValueError, match="SELL order"):
            self._order(OrderAction.SELL, 1)

    def test_hold_nonzero_shares(self) -> None:
        """Test HOLD with shares is rejected."""
        with pytest.raises(ValueError, match="HOLD order"):
            self._order(OrderAction.HOLD, 1)


class TestRebalanceRequest:
    """Test cases for RebalanceRequest."""

    def test_total_portfolio_value(self) -> None:
        """Test total value is holdings plus extra cash."""
        request = RebalanceRequest(
            momentum={},
            holdings={
                "VTI": Holding("VTI", shares=10, price=250.0),
                "BND": Holding("BND", shares=20, price=70.0),
            },
            extra_cash=500.0,
        )

        assert request.total_portfolio_value == 4400.0

    def test_negative_extra_cash(self) -> None:
        """Test negative extra cash is rejected."""
        with pytest.raises(InvalidInputError, match="extra_cash must be non-negative"):
            RebalanceRequest(momentum={}, extra_cash=-1.0)

    @pytest.mark.parametrize("extra_cash", [float("nan"), float("inf")])
    def test_non_finite_extra_cash(self, extra_cash: float) -> None:
        """Test NaN and infinite extra cash are rejected."""
        with pytest.raises(InvalidInputError, match="extra_cash must be non-negative"):
            RebalanceRequest(momentum={}, extra_cash=extra_cash)

    @pytest.mark.parametrize("quote", [0.0, float("nan"), float("inf")])
    def test_nonpositive_quote(self, quote: float) -> None:
        """Test zero and non-finite quotes are rejected."""
        with pytest.raises(InvalidInputError, match="price must be positive for VEA"):
            RebalanceRequest(momentum={}, prices={"VEA": quote})

    def test_mismatched_holding_key(self) -> None:
        """Test holdings must be keyed by their own ticker."""
        with pytest.raises(InvalidInputError, match="holding keyed as VEA"):
            RebalanceRequest(
                momentum={}, holdings={"VEA": Holding("VTI", shares=1, price=10.0)}
            )

    def test_invalid_strategy(self) -> None:
        """Test strategy must be a StrategyConfig."""
        with pytest.raises(InvalidInputError, match="strategy must be a StrategyConfig"):
            RebalanceRequest(momentum={}, strategy="hybrid")


class TestAllocationResult:
    """Test cases for AllocationResult."""

    def test_optional_solver_fields_default_empty(self) -> None:
        """Test solver-only maps default to empty dicts."""
        result = AllocationResult(
            final_shares={"AAA": 3}, leftover_budget=5.0, promotions=1, strategy_used="hybrid"
        )

        assert result.deviations == {}
        assert result.final_values == {}
        assert result.purchase_costs == {}


class TestRebalanceRequestFromDict:
    """Test cases for RebalanceRequest.from_dict."""

    def test_full_document(self) -> None:
        """Test every section is parsed."""
        request = RebalanceRequest.from_dict(
            {
                "extra_cash": "1000",
                "holdings": {"VTI": {"shares": 10, "price": 250.0}},
                "momentum": {"VTI": {"average": 0.12, "absoluteMomentum": True}},
                "prices": {"VEA": 50},
                "universe": {"stocks": ["VTI", "VEA"]},
            }
        )

        assert request.extra_cash == 1000.0
        assert request.holdings["VTI"].value == 2500.0
        assert request.momentum["VTI"] == MomentumScore(0.12, True)
        assert request.prices == {"VEA": 50.0}
        assert request.universe == {"stocks": ["VTI", "VEA"]}
        assert request.strategy is None

    def test_empty_document(self) -> None:
        """Test missing sections default to empty."""
        request = RebalanceRequest.from_dict({})

        assert request.holdings == {}
        assert request.momentum == {}
        assert request.extra_cash == 0.0

    def test_strategy_passed_through(self) -> None:
        """Test an explicit strategy configuration is attached."""
        strategy = StrategyConfig(enable_fallback=False)

        assert RebalanceRequest.from_dict({}, strategy=strategy).strategy is strategy

    @pytest.mark.parametrize(
        "document, message",
        [
            ({"extra_cash": "lots"}, "extra_cash must be a number"),
            ({"prices": {"VEA": "n/a"}}, "price must be a number for VEA"),
            ({"prices": {"VEA": None}}, "price must be a number for VEA"),
            ({"holdings": {"VTI": {"shares": 1, "price": "abc"}}}, "price must be a number for VTI"),
            ({"momentum": {"VTI": {"average": "high"}}}, "Invalid momentum for VTI"),
            ({"holdings": ["VTI"]}, "holdings must be a mapping"),
            ({"holdings": {"VTI": 10}}, "holding VTI must be a mapping"),
        ],
    )
    def test_malformed_document(self, document: dict, message: str) -> None:
        """Test malformed values raise InvalidInputError."""
        with pytest.raises(InvalidInputError, match=message):
            RebalanceRequest.from_dict(document)

    def test_non_mapping_document(self) -> None:
        """Test a document that is not a mapping is rejected."""
        with pytest.raises(InvalidInputError, match="portfolio must be a mapping"):
            RebalanceRequest.from_dict(["VTI"])

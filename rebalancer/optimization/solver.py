"""External linear-programming optimizer client and adapter.

The optimizer service receives the whole rebalance problem and returns
post-trade share counts per asset. A successful answer ("optimal" or
"heuristic") is adopted as-is; anything else makes the engine run the
local heuristics instead. The two paths are never mixed within one run.

API Endpoint: POST {base_url}/optimization/rebalance
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from rebalancer.portfolio.base import AllocationResult, BuyCandidate, Holding
from rebalancer.portfolio.targets import TargetAllocation
from rebalancer.utils.config import SolverSettings
from rebalancer.utils.exceptions import (
    SolverError,
    SolverResponseError,
    SolverUnavailableError,
)
from rebalancer.utils.logging import get_logger, log_with_context

logger = get_logger(__name__)

SUCCESS_STATUSES = frozenset({"optimal", "heuristic"})
STRATEGY_USED = "backend-optimization"


@dataclass(frozen=True)
class SolverOutcome:
    """Parsed optimizer response.

    Attributes:
        status: solverStatus (optimal, heuristic, infeasible, error)
        allocations: Per-asset allocation dicts
        metrics: optimizationMetrics
        error: Error message reported by the service, if any
    """

    status: str
    allocations: List[Dict[str, Any]] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @classmethod
    def from_payload(cls, payload: Any) -> "SolverOutcome":
        """Validate and parse a response body.

        Raises:
            SolverResponseError: If the payload does not match the contract
        """
        if not isinstance(payload, dict):
            raise SolverResponseError(f"Expected JSON object, got {type(payload).__name__}")

        status = payload.get("solverStatus")
        if not isinstance(status, str):
            raise SolverResponseError(f"Missing or invalid solverStatus: {status!r}")

        allocations = payload.get("allocations") or []
        metrics = payload.get("optimizationMetrics") or {}
        if not isinstance(allocations, list) or not isinstance(metrics, dict):
            raise SolverResponseError("allocations must be a list and optimizationMetrics an object")

        return cls(
            status=status,
            allocations=allocations,
            metrics=metrics,
            error=payload.get("error"),
        )


class SolverClient:
    """HTTP client for the optimizer service.

    Example:
        >>> client = SolverClient("http://localhost:3001/api", timeout=10)
        >>> outcome = client.optimize({"targetETFs": [...], "extraCash": 500})
        >>> outcome.status
        'optimal'
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        """Initialize solver client.

        Args:
            base_url: API root of the optimizer service
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        logger.debug("SolverClient initialized (url: %s, timeout: %ss)", self.base_url, timeout)

    @classmethod
    def from_settings(cls, settings: SolverSettings) -> Optional["SolverClient"]:
        """Create a client, or None if the solver is disabled or unconfigured."""
        if not settings.is_active:
            return None
        return cls(settings.base_url, timeout=settings.timeout)

    def optimize(self, request_payload: Mapping[str, Any]) -> SolverOutcome:
        """Submit a rebalance problem and wait for the answer.

        Args:
            request_payload: Request body matching the optimizer contract

        Returns:
            SolverOutcome

        Raises:
            SolverUnavailableError: On network failure, timeout or HTTP error
            SolverResponseError: If the body is not a valid response
        """
        url = f"{self.base_url}/optimization/rebalance"
        try:
            response = requests.post(url, json=dict(request_payload), timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as e:
            raise SolverUnavailableError(
                f"Optimizer timed out after {self.timeout}s: {e}"
            ) from e
        except requests.RequestException as e:
            raise SolverUnavailableError(f"Optimizer request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise SolverResponseError(f"Optimizer returned invalid JSON: {e}") from e

        return SolverOutcome.from_payload(payload)

    def health_check(self) -> bool:
        """Return True if the optimizer health endpoint answers successfully."""
        url = f"{self.base_url}/optimization/health"
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Optimizer health check failed: %s", e)
            return False
        return response.status_code == 200


class ExternalOptimizerAdapter:
    """Maps a rebalance run onto the optimizer contract and back.

    Attributes:
        client: SolverClient, or None to always use the local path
        alternative_asset: Ticker that gets the tighter deviation band
        allowed_deviation: Default deviation band in pct points
        alternative_allowed_deviation: Band for the alternative asset
        strategy_hint: optimizationStrategy sent with every request
    """

    def __init__(
        self,
        client: Optional[SolverClient] = None,
        alternative_asset: Optional[str] = None,
        allowed_deviation: float = 5.0,
        alternative_allowed_deviation: float = 2.0,
        strategy_hint: str = "minimize-leftover",
    ):
        self.client = client
        self.alternative_asset = alternative_asset
        self.allowed_deviation = allowed_deviation
        self.alternative_allowed_deviation = alternative_allowed_deviation
        self.strategy_hint = strategy_hint

    def build_request(
        self,
        allocations: Sequence[TargetAllocation],
        holdings: Mapping[str, Holding],
        extra_cash: float,
    ) -> Dict[str, Any]:
        """Build the optimizer request for every target asset."""
        return {
            "currentHoldings": [
                {"name": ticker, "shares": h.shares, "price": h.price}
                for ticker, h in holdings.items()
            ],
            "targetETFs": [
                {
                    "name": a.ticker,
                    "targetPercentage": math.floor(a.target_percent),
                    "allowedDeviation": self._deviation_band(a.ticker),
                    "pricePerShare": a.price,
                }
                for a in allocations
            ],
            "extraCash": max(0.0, extra_cash),
            "optimizationStrategy": self.strategy_hint,
        }

    def _deviation_band(self, ticker: str) -> float:
        if ticker == self.alternative_asset:
            return self.alternative_allowed_deviation
        return self.allowed_deviation

    def optimize(
        self,
        allocations: Sequence[TargetAllocation],
        candidates: Sequence[BuyCandidate],
        holdings: Mapping[str, Holding],
        extra_cash: float,
    ) -> Optional[AllocationResult]:
        """Try the remote optimizer.

        Returns:
            AllocationResult on success, None if the local path must run
        """
        if self.client is None:
            logger.debug("Optimizer not configured, using local allocation")
            return None

        payload = self.build_request(allocations, holdings, extra_cash)
        try:
            outcome = self.client.optimize(payload)
            if not outcome.succeeded:
                log_with_context(
                    logger,
                    "warning",
                    "Optimizer did not find a solution, falling back to local heuristics",
                    status=outcome.status,
                    error=outcome.error,
                )
                return None
            result = self.to_result(outcome, allocations, candidates, holdings)
        except SolverError as e:
            logger.warning("Optimizer unavailable, using local heuristics: %s", e)
            return None

        log_with_context(
            logger,
            "info",
            "Adopted optimizer allocation",
            status=outcome.status,
            leftover=round(result.leftover_budget, 2),
            promotions=result.promotions,
        )
        return result

    def to_result(
        self,
        outcome: SolverOutcome,
        allocations: Sequence[TargetAllocation],
        candidates: Sequence[BuyCandidate],
        holdings: Mapping[str, Holding],
    ) -> AllocationResult:
        """Convert a successful outcome into an AllocationResult.

        The optimizer reports post-trade positions; final_shares holds the
        shares bought, finalShares minus current shares, never below zero.

        Raises:
            SolverResponseError: If an allocation entry is malformed
        """
        targeted = {a.ticker for a in allocations}
        floors = {c.ticker: c.floor_shares for c in candidates}

        final_shares: Dict[str, int] = {}
        deviations: Dict[str, float] = {}
        final_values: Dict[str, float] = {}
        purchase_costs: Dict[str, float] = {}
        promotions = 0

        for entry in outcome.allocations:
            if not isinstance(entry, dict):
                raise SolverResponseError(f"Invalid allocation entry: {entry!r}")
            ticker = entry.get("etfName")
            if ticker not in targeted:
                continue
            try:
                position = int(entry["finalShares"])
                deviations[ticker] = float(entry["deviation"])
                final_values[ticker] = float(entry["finalValue"])
                purchase_costs[ticker] = float(entry.get("costOfPurchase", 0.0))
            except (KeyError, TypeError, ValueError) as e:
                raise SolverResponseError(f"Invalid allocation for {ticker}: {e}") from e

            holding = holdings.get(ticker)
            current_shares = holding.shares if holding else 0
            bought = max(0, int(position - current_shares))
            final_shares[ticker] = bought
            promotions += max(0, bought - floors.get(ticker, 0))

        try:
            unused = float(outcome.metrics.get("unusedBudget", 0.0))
        except (TypeError, ValueError) as e:
            raise SolverResponseError(f"Invalid unusedBudget: {e}") from e

        return AllocationResult(
            final_shares=final_shares,
            leftover_budget=max(0.0, unused),
            promotions=promotions,
            strategy_used=STRATEGY_USED,
            deviations=deviations,
            final_values=final_values,
            purchase_costs=purchase_costs,
        )

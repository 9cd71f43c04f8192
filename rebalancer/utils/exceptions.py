"""Custom exceptions for the rebalancer.

This module defines the exception hierarchy for the application.
Only InvalidInputError and NoEligibleAssetsError escape a rebalance run;
the remaining errors are recovered inside the engine.
"""


class RebalancerError(Exception):
    """Base exception for all rebalancer errors.

    All custom exceptions in the application should inherit from this class.
    """

    pass


class ConfigurationError(RebalancerError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Missing required configuration keys
        - Unknown promotion strategy name in the config file
        - Configuration file not found
    """

    pass


class InvalidInputError(RebalancerError, ValueError):
    """Raised when rebalance input is rejected before any allocation.

    Examples:
        - Nonpositive price for a holding or target asset
        - Negative share count
        - Negative extra cash
        - Malformed strategy configuration
    """

    pass


class NoEligibleAssetsError(RebalancerError):
    """Raised when momentum selection yields no target assets.

    This is a terminal, user-facing condition: no orders are produced.
    """

    pass


class SolverError(RebalancerError):
    """Base exception for external optimizer errors.

    The rebalance engine catches these and switches to the local
    allocation path; they are logged, never surfaced to the caller.
    """

    pass


class SolverUnavailableError(SolverError):
    """Raised when the external optimizer cannot be reached.

    Examples:
        - Connection refused
        - Request timed out
        - Non-2xx HTTP status
    """

    pass


class SolverResponseError(SolverError):
    """Raised when the external optimizer returns an unusable payload.

    Examples:
        - Body is not JSON
        - Missing allocations or metrics
    """

    pass


class PriceLookupError(RebalancerError):
    """Raised when a quote cannot be fetched for a single ticker.

    The engine substitutes the default price and continues.
    """

    pass

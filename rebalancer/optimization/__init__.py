"""External optimizer integration.

This module submits the rebalance problem to a linear-programming service
and maps its answer back onto an allocation result.
"""

from rebalancer.optimization.solver import ExternalOptimizerAdapter, SolverClient

__all__ = ["SolverClient", "ExternalOptimizerAdapter"]

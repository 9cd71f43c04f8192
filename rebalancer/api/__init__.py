"""User-friendly APIs for the rebalancer.

Components:
- RebalanceAPI: End-to-end rebalance runs, order formatting and summaries
"""

from rebalancer.api.rebalance_api import RebalanceAPI, get_strategy_description

__all__ = ["RebalanceAPI", "get_strategy_description"]

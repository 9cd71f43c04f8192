"""Budget-constrained momentum portfolio rebalancer."""

__version__ = "0.1.0"

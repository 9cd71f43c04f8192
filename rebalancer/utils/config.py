"""Configuration management for the rebalancer.

This module provides YAML configuration loading, dot-notation access and
the frozen settings objects the rebalance engine reads during a run.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import yaml
from dotenv import load_dotenv

from rebalancer.portfolio.base import PromotionStrategy, StrategyConfig
from rebalancer.utils.exceptions import ConfigurationError, InvalidInputError

ROOT_DIR = Path(__file__).parent.parent.parent

DEFAULT_UNIVERSE = {
    "STOCKS": ["VTI", "VEA", "VWO"],
    "BONDS": ["TLT", "BWX", "BND"],
    "COMMODITIES": ["PDBC", "GLDM"],
    "ALTERNATIVES": ["IBIT"],
}


class Config:
    """Simple configuration loader and accessor.

    Loads YAML configuration files and provides dict-like access to settings.

    Example:
        >>> config = Config.from_file("config/default.yaml")
        >>> top_assets = config.get("rebalancing.top_assets", 4)
    """

    def __init__(self, config_dict: dict[str, Any]) -> None:
        """Initialize with configuration dictionary.

        Args:
            config_dict: Configuration data as nested dictionary
        """
        self._config = config_dict

    @classmethod
    def from_file(cls, filepath: str | Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            filepath: Path to YAML configuration file

        Returns:
            Config instance with loaded configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        with open(path, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)

        if config_dict is None:
            config_dict = {}

        return cls(config_dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Supports nested keys using dot notation (e.g., "solver.timeout").

        Args:
            key: Configuration key (supports dot notation for nested keys)
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def __getitem__(self, key: str) -> Any:
        """Get configuration value using bracket notation.

        Raises:
            KeyError: If key not found
        """
        value = self.get(key)
        if value is None:
            raise KeyError(f"Configuration key not found: {key}")
        return value

    def to_dict(self) -> dict[str, Any]:
        """Get the full configuration as dictionary."""
        return self._config.copy()


def load_config(filepath: str | Path = None) -> Config:
    """Helper function to load configuration.

    Args:
        filepath: Path to YAML configuration file. If None, uses default path.

    Returns:
        Config instance
    """
    if filepath is None:
        filepath = ROOT_DIR / "config" / "default.yaml"
    return Config.from_file(filepath)


@dataclass(frozen=True)
class SolverSettings:
    """Connection settings for the external optimizer.

    Attributes:
        enabled: Whether the remote solver is attempted at all
        base_url: API root; requests go to {base_url}/optimization/rebalance
        timeout: Request timeout in seconds
        strategy_hint: Value sent as optimizationStrategy
    """

    enabled: bool = True
    base_url: Optional[str] = None
    timeout: float = 10.0
    strategy_hint: str = "minimize-leftover"

    @property
    def is_active(self) -> bool:
        return self.enabled and bool(self.base_url)


@dataclass(frozen=True)
class RebalanceSettings:
    """Read-only settings shared by every rebalance run.

    Attributes:
        top_assets: Number of positive-momentum assets to hold
        alternative_asset: Ticker of the separately-weighted alternative bucket
        alternative_allocation: Target percentage for the alternative bucket
        allowed_deviation: Deviation band (pct points) sent to the solver
        alternative_allowed_deviation: Tighter band for the alternative asset
        default_price: Price used when no quote is available
        strategy: Promotion strategy configuration
        universe: ETF universe {category: [tickers]}
        disabled_categories: Universe categories excluded from selection
        solver: External optimizer settings
    """

    top_assets: int = 4
    alternative_asset: Optional[str] = "IBIT"
    alternative_allocation: float = 4.0
    allowed_deviation: float = 5.0
    alternative_allowed_deviation: float = 2.0
    default_price: float = 1.0
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    universe: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_UNIVERSE.items()}
    )
    disabled_categories: Tuple[str, ...] = ()
    solver: SolverSettings = field(default_factory=SolverSettings)

    def universe_tickers(self, universe: Optional[Mapping[str, Sequence[str]]] = None) -> Set[str]:
        """Tickers of all enabled categories of the given (or configured) universe."""
        universe = universe or self.universe
        return {
            ticker
            for category, tickers in universe.items()
            if category not in self.disabled_categories
            for ticker in tickers
        }

    def __post_init__(self) -> None:
        if self.top_assets < 1:
            raise ConfigurationError(
                f"top_assets must be >= 1, got {self.top_assets}"
            )
        if not 0 <= self.alternative_allocation <= 100:
            raise ConfigurationError(
                "alternative_allocation must be in [0, 100], "
                f"got {self.alternative_allocation}"
            )
        if self.default_price <= 0:
            raise ConfigurationError(
                f"default_price must be positive, got {self.default_price}"
            )

    @classmethod
    def from_config(cls, config: Config) -> "RebalanceSettings":
        """Build settings from a loaded Config.

        Raises:
            ConfigurationError: If a value is missing or invalid
        """
        strategy_section = config.get("strategy") or {}
        if not isinstance(strategy_section, dict):
            raise ConfigurationError(
                f"strategy must be a mapping, got {type(strategy_section).__name__}"
            )
        # An explicit null disables the fallback; only a missing key defaults.
        fallback_name = strategy_section.get("fallback", "price-efficient")

        try:
            strategy = StrategyConfig(
                primary_strategy=PromotionStrategy.from_name(
                    config.get("strategy.primary", "multi-share")
                ),
                enable_fallback=bool(config.get("strategy.enable_fallback", True)),
                fallback_strategy=_optional_strategy(fallback_name),
                max_iterations=int(config.get("strategy.max_iterations", 1000)),
            )
        except InvalidInputError as e:
            raise ConfigurationError(f"Invalid strategy configuration: {e}") from e

        universe = {
            category: [str(t) for t in tickers or []]
            for category, tickers in (config.get("universe") or DEFAULT_UNIVERSE).items()
        }
        disabled = tuple(
            category
            for category, enabled in (config.get("universe_enabled") or {}).items()
            if not enabled
        )

        return cls(
            top_assets=int(config.get("rebalancing.top_assets", 4)),
            alternative_asset=config.get("rebalancing.alternative_asset", "IBIT"),
            alternative_allocation=float(
                config.get("rebalancing.alternative_allocation", 4.0)
            ),
            allowed_deviation=float(config.get("rebalancing.allowed_deviation", 5.0)),
            alternative_allowed_deviation=float(
                config.get("rebalancing.alternative_allowed_deviation", 2.0)
            ),
            default_price=float(config.get("rebalancing.default_price", 1.0)),
            strategy=strategy,
            universe=universe,
            disabled_categories=disabled,
            solver=load_solver_settings(config),
        )


def _optional_strategy(name: Optional[str]) -> Optional[PromotionStrategy]:
    if name in (None, "", "none"):
        return None
    return PromotionStrategy.from_name(name)


def load_solver_settings(
    config: Config,
    env_file: str | Path | None = None,
) -> SolverSettings:
    """Load solver settings from YAML with environment overrides.

    Environment variables (optionally read from a .env file):
        - REBALANCER_SOLVER_URL: API root of the optimizer service
        - REBALANCER_SOLVER_TIMEOUT: Timeout in seconds
        - REBALANCER_SOLVER_ENABLED: "true" or "false"

    Args:
        config: Loaded configuration
        env_file: Path to .env file. If None, uses the project root .env.

    Returns:
        SolverSettings instance

    Raises:
        ConfigurationError: If the timeout is not a positive number
    """
    if env_file is None:
        env_file = ROOT_DIR / ".env"
    if Path(env_file).exists():
        load_dotenv(env_file)

    base_url = os.getenv("REBALANCER_SOLVER_URL") or config.get("solver.base_url")
    enabled_env = os.getenv("REBALANCER_SOLVER_ENABLED")
    if enabled_env is not None:
        enabled = enabled_env.strip().lower() in ("1", "true", "yes")
    else:
        enabled = bool(config.get("solver.enabled", True))

    raw_timeout = os.getenv("REBALANCER_SOLVER_TIMEOUT") or config.get(
        "solver.timeout", 10.0
    )
    try:
        timeout = float(raw_timeout)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid solver timeout: {raw_timeout}") from e
    if timeout <= 0:
        raise ConfigurationError(f"Solver timeout must be positive, got {timeout}")

    return SolverSettings(
        enabled=enabled,
        base_url=base_url.rstrip("/") if base_url else None,
        timeout=timeout,
        strategy_hint=config.get("solver.strategy_hint", "minimize-leftover"),
    )


def load_settings(filepath: str | Path = None) -> RebalanceSettings:
    """Load the default (or given) YAML file into RebalanceSettings."""
    return RebalanceSettings.from_config(load_config(filepath))

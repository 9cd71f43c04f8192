#!/usr/bin/env python3
"""Rebalancing CLI tool.

This script turns momentum scores and current holdings into whole-share
rebalancing orders:
- Run a rebalance for a portfolio file
- List the available promotion strategies
- Check the external optimizer

Examples:
    # Rebalance with the default configuration
    python scripts/rebalance.py run config/example_portfolio.yaml

    # Use a different promotion strategy, local heuristics only
    python scripts/rebalance.py run config/example_portfolio.yaml \\
        --strategy remainder-first --no-fallback --no-solver

    # List promotion strategies
    python scripts/rebalance.py strategies

    # Check that the optimizer service answers
    python scripts/rebalance.py health
"""

import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.table import Table

sys.path.append(".")

from rebalancer.api.rebalance_api import RebalanceAPI
from rebalancer.optimization.solver import SolverClient
from rebalancer.portfolio.base import (
    OrderAction,
    PromotionStrategy,
    RebalanceRequest,
    RebalanceResult,
)
from rebalancer.utils.config import Config, RebalanceSettings, load_config
from rebalancer.utils.exceptions import (
    ConfigurationError,
    InvalidInputError,
    NoEligibleAssetsError,
)
from rebalancer.utils.logging import setup_logging, setup_logging_from_config

console = Console()

ACTION_STYLES = {
    OrderAction.BUY: "green",
    OrderAction.SELL: "red",
    OrderAction.HOLD: "dim",
}


def load_portfolio(path: Path) -> RebalanceRequest:
    """Load a portfolio YAML file into a RebalanceRequest.

    Args:
        path: Path to YAML portfolio file

    Returns:
        RebalanceRequest

    Raises:
        InvalidInputError: If the file does not describe a valid portfolio
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return RebalanceRequest.from_dict(data)


def build_settings(
    config: Config,
    strategy: Optional[str],
    fallback: Optional[str],
    no_fallback: bool,
    no_solver: bool,
) -> RebalanceSettings:
    """Build settings from config and apply command-line overrides."""
    settings = RebalanceSettings.from_config(config)

    strategy_config = settings.strategy
    if strategy:
        strategy_config = replace(
            strategy_config, primary_strategy=PromotionStrategy.from_name(strategy)
        )
    if fallback:
        strategy_config = replace(
            strategy_config, fallback_strategy=PromotionStrategy.from_name(fallback)
        )
    if no_fallback:
        strategy_config = replace(strategy_config, enable_fallback=False)

    solver = settings.solver
    if no_solver:
        solver = replace(solver, enabled=False)

    return replace(settings, strategy=strategy_config, solver=solver)


def print_orders(result: RebalanceResult) -> None:
    """Print the order list as a rich table."""
    table = Table(title="Rebalancing Orders", show_header=True, header_style="bold magenta")
    table.add_column("Ticker", style="cyan", no_wrap=True)
    table.add_column("Action")
    table.add_column("Shares", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Final", justify="right")
    table.add_column("Deviation", justify="right")
    table.add_column("Reason")

    for order in result.orders:
        style = ACTION_STYLES[order.action]
        table.add_row(
            order.ticker,
            f"[{style}]{order.action.value}[/{style}]",
            f"{order.shares:g}",
            f"${order.target_value:,.2f}",
            f"${order.current_value:,.2f}",
            f"${order.final_value:,.2f}",
            f"{order.deviation_percentage:+.2f}%",
            order.reason,
        )

    console.print(table)


def print_summary(api: RebalanceAPI, result: RebalanceResult) -> None:
    """Print run summary metrics as a rich table."""
    summary = api.summarize(result)

    table = Table(title="Summary", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    table.add_row("Portfolio Value", f"${result.total_portfolio_value:,.2f}")
    table.add_row("Available Budget", f"${summary['available_budget']:,.2f}")
    table.add_row("Leftover Budget", f"${summary['leftover_budget']:,.2f}")
    table.add_row("Budget Utilization", f"{summary['budget_utilization']:.1%}")
    table.add_row("", "")
    table.add_row("Buy Orders", str(summary["buy_order_count"]))
    table.add_row("Sell Orders", str(summary["sell_order_count"]))
    table.add_row("Hold Orders", str(summary["hold_order_count"]))
    table.add_row("Promotions", str(summary["promotions"]))
    table.add_row("", "")
    table.add_row("Strategy", summary["strategy_used"])
    table.add_row("Source", summary["source"])

    console.print(table)


@click.group()
@click.option("--log-level", default=None, help="Logging level (overrides the config file)")
@click.pass_context
def cli(ctx, log_level):
    """Budget-constrained momentum rebalancer."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    setup_logging(level=log_level or "WARNING")


@cli.command()
@click.argument("portfolio", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config YAML")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in PromotionStrategy]),
    help="Primary promotion strategy",
)
@click.option(
    "--fallback",
    type=click.Choice([s.value for s in PromotionStrategy]),
    help="Fallback promotion strategy",
)
@click.option("--no-fallback", is_flag=True, help="Disable the fallback strategy")
@click.option("--no-solver", is_flag=True, help="Skip the external optimizer")
@click.pass_context
def run(ctx, portfolio, config_path, strategy, fallback, no_fallback, no_solver):
    """Compute rebalancing orders for a portfolio file.

    Examples:

        \b
        python scripts/rebalance.py run config/example_portfolio.yaml

        \b
        python scripts/rebalance.py run portfolio.yaml --strategy hybrid --no-solver
    """
    try:
        config = load_config(config_path)
        setup_logging_from_config(config, level=ctx.obj.get("log_level"))
        settings = build_settings(config, strategy, fallback, no_fallback, no_solver)
        request = load_portfolio(portfolio)
    except (ConfigurationError, InvalidInputError, FileNotFoundError, yaml.YAMLError) as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)

    api = RebalanceAPI(settings=settings)

    try:
        result = api.rebalance(request)
    except NoEligibleAssetsError as e:
        click.echo(f"✗ No eligible assets: {e}")
        sys.exit(1)

    print_orders(result)
    print_summary(api, result)


@cli.command()
def strategies():
    """List available promotion strategies."""
    table = Table(title="Promotion Strategies", show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Label")
    table.add_column("Description")

    for strategy in PromotionStrategy:
        table.add_row(strategy.value, strategy.label, strategy.description)

    console.print(table)


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config YAML")
def health(config_path):
    """Check that the external optimizer answers."""
    try:
        settings = RebalanceSettings.from_config(load_config(config_path))
    except ConfigurationError as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)

    client = SolverClient.from_settings(settings.solver)
    if client is None:
        click.echo("Optimizer disabled or not configured")
        sys.exit(1)

    if client.health_check():
        click.echo(f"✓ Optimizer healthy at {client.base_url}")
    else:
        click.echo(f"✗ Optimizer not reachable at {client.base_url}")
        sys.exit(1)


if __name__ == "__main__":
    cli()

"""Logging setup for rebalance runs.

Run logs go to stdout so they can be redirected next to the order table.
``log_with_context`` appends a run's key figures (source, strategy,
leftover budget) to a message as ``key=value`` pairs.
"""

import logging
import sys
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Optional

if TYPE_CHECKING:
    from rebalancer.utils.config import Config

DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

# Held at WARNING or above; the optimizer client talks HTTP through these.
HTTP_LOGGERS = ("urllib3", "requests")


def setup_logging(
    level: str = "INFO",
    log_format: str | None = None,
    quiet_loggers: Iterable[str] = HTTP_LOGGERS,
) -> None:
    """Configure the root logger.

    Args:
        level: Logging level name, case-insensitive; unknown names mean INFO
        log_format: Custom format string (defaults to DEFAULT_FORMAT)
        quiet_loggers: Loggers that never log below WARNING

    Example:
        >>> from rebalancer.utils.logging import setup_logging
        >>> setup_logging(level="DEBUG")
    """
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        format=log_format or DEFAULT_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def setup_logging_from_config(config: "Config", level: Optional[str] = None) -> None:
    """Configure logging from the ``logging`` section of a Config.

    Args:
        config: Loaded configuration (reads logging.level and logging.format)
        level: Level that takes precedence over the configured one
    """
    setup_logging(
        level=level or config.get("logging.level", "INFO"),
        log_format=config.get("logging.format"),
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def format_context(**context: Any) -> str:
    """Render context fields as ``key=value`` pairs.

    Floats are shown with two decimals, enums by value and None as ``-``.
    """
    return " ".join(f"{key}={_render(value)}" for key, value in context.items())


def _render(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: Any,
) -> None:
    """Log a message followed by its context fields.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error, critical)
        message: Log message
        **context: Additional context fields

    Example:
        >>> logger = get_logger(__name__)
        >>> log_with_context(
        ...     logger, "info", "Rebalance complete",
        ...     source="local", leftover=12.5, promotions=3
        ... )
        # Logs: "Rebalance complete | source=local leftover=12.50 promotions=3"
    """
    log_func = getattr(logger, level.lower())
    if context:
        log_func("%s | %s", message, format_context(**context))
    else:
        log_func(message)

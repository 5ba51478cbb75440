"""Centralized logging configuration for ccprovider.

Everything logs below the ``ccprovider`` logger. Individual subtrees can be
tuned on their own, e.g. ``{"adapters": "DEBUG"}`` to trace CLI spawning and
stream parsing while the rest of the package stays at INFO.
"""

from __future__ import annotations

import logging
import sys
from typing import Mapping, Optional

LOGGER_NAME = "ccprovider"

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def parse_level(name: str) -> int:
    """Return the numeric level for a level name, rejecting unknown names."""
    try:
        return LEVELS[str(name).upper()]
    except KeyError:
        raise ValueError(f"Unknown log level {name!r}, expected one of: {', '.join(LEVELS)}") from None


def setup_logging(
    level: str = "INFO",
    verbose: int = 0,
    quiet: bool = False,
    levels: Optional[Mapping[str, str]] = None,
) -> logging.Logger:
    """
    Configure logging for ccprovider.

    Args:
        level: Base log level (DEBUG, INFO, WARNING, ERROR)
        verbose: Verbosity increment (each level decreases threshold)
        quiet: If True, only show errors (subtree levels are ignored)
        levels: Per-subtree levels keyed by name below ``ccprovider``,
            such as ``"adapters"`` or ``"adapters.cli_client"``

    Returns:
        Configured logger instance
    """
    if quiet:
        effective_level = logging.ERROR
    elif verbose == 1:
        effective_level = logging.INFO
    elif verbose >= 2:
        effective_level = logging.DEBUG
    else:
        effective_level = LEVELS.get(level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(effective_level)
    logger.handlers.clear()

    # Levels from an earlier call must not linger on subtrees
    for name in list(logging.root.manager.loggerDict):
        if name.startswith(f"{LOGGER_NAME}."):
            logging.getLogger(name).setLevel(logging.NOTSET)

    handler_level = effective_level
    if levels and not quiet:
        for name, subtree_level in levels.items():
            numeric = parse_level(subtree_level)
            get_logger(name).setLevel(numeric)
            handler_level = min(handler_level, numeric)

    # Diagnostics go to stderr so generated text on stdout stays clean
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(handler_level)

    if handler_level <= logging.DEBUG:
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = logging.Formatter("%(levelname)-8s %(message)s")

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (defaults to 'ccprovider')

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)

"""Logging setup with rich console formatting.

Log output goes to stderr so it never interleaves with the board the
terminal UI draws on stdout.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_ROOT = "gm_studio"


def setup_logging(level: str | int = "WARNING") -> logging.Logger:
    """Install a RichHandler on the gm_studio logger.

    Args:
        level: Level name or number.

    Returns:
        The package root logger.
    """
    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the gm_studio namespace.

    Module names that already start with 'gm_studio' are used as-is.
    """
    if name == _ROOT or name.startswith(f"{_ROOT}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")

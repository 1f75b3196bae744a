"""Logging configuration for the cortex CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the CLI entry point.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_NAME = "cortex"


def setup_logging(level: str = "WARNING", console: Console | None = None) -> logging.Logger:
    """Attach a single RichHandler to the ``cortex`` logger.

    Calling it again replaces the handler instead of stacking a second one.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        console: Rich console to write to (stderr when omitted).

    Returns:
        The configured ``cortex`` logger.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger

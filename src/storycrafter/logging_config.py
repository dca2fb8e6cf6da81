"""Logging setup rendered through rich."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "storycrafter"


def configure_logging(
    level: int | str = logging.WARNING,
    console: Console | None = None,
) -> logging.Logger:
    """Attach a single rich handler to the package logger.

    Calling this again replaces the previously installed handler, so the CLI
    can reconfigure verbosity without duplicating output.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.propagate = False
    return logger

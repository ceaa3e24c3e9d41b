"""Logging utilities for the GameLift server SDK."""

import logging
from typing import Literal

ROOT_LOGGER_NAME = "gamelift_io"


def get_logger(name: str) -> logging.Logger:
    """Get a logger nested under the gamelift_io namespace.

    Args:
        name: the name of the logger, which will be prefixed with 'gamelift_io.'

    Returns:
        a configured logger instance
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def _create_handler() -> logging.Handler:
    try:
        from rich.console import Console
        from rich.logging import RichHandler
    except ImportError:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        return handler

    return RichHandler(console=Console(stderr=True), rich_tracebacks=True)


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
) -> None:
    """Send the SDK's log records to stderr at ``level``.

    Only the gamelift_io logger is touched, so the game server's own logging
    setup is left alone. Calling it again changes the level without adding a
    second handler.

    Args:
        level: the log level to use
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    if not any(getattr(handler, "_gamelift_io", False) for handler in logger.handlers):
        handler = _create_handler()
        handler._gamelift_io = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
        logger.propagate = False

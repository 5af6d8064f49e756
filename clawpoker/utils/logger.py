"""Structured logging configuration."""
import logging
import sys
from typing import Optional

from clawpoker.config import config

ROOT_LOGGER = "clawpoker"


def _configure_root() -> logging.Logger:
    """Attach the stdout handler to the package logger, once."""
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        root.addHandler(handler)
        root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger under the package logger.

    Module loggers (``clawpoker.game.betting`` and so on) carry no handlers
    of their own; records propagate to the package logger, so the level
    is set in one place.

    Args:
        name: Logger name, typically __name__ of the calling module.

    Returns:
        Configured logger instance.
    """
    root = _configure_root()
    if not name or name == ROOT_LOGGER:
        return root
    if not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)

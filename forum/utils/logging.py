"""
Logging helpers shared by the web app, the CLI and the RBAC audit trail.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"

# verbosity 0-4 as used by the CLI flags
VERBOSITY_LEVELS = {
    0: logging.CRITICAL,
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}

_ROOT_LOGGER_NAME = "forum"
_configured = False


def _level_for(verbosity: Optional[int]) -> int:
    if verbosity is None:
        verbosity = int(os.getenv("FORUM_VERBOSITY", "3"))
    verbosity = max(0, min(4, verbosity))
    return VERBOSITY_LEVELS[verbosity]


def setup_logging(verbosity: Optional[int] = None) -> None:
    """
    Configure the root logger with a single stream handler.

    Safe to call more than once; later calls only adjust the level, and
    only when a verbosity is given.
    """
    global _configured

    if _configured and verbosity is None:
        return

    level = _level_for(verbosity)
    root = logging.getLogger()
    root.setLevel(level)

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _configured = True


def setup_cli_logging(verbosity: int = 3) -> None:
    """CLI entry point variant: short format, no timestamps."""
    global _configured

    level = _level_for(verbosity)
    root = logging.getLogger()
    root.setLevel(level)

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        root.addHandler(handler)
        _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger for a module.

    Names outside the package namespace (e.g. 'rbac.audit') are nested
    under it so one level setting covers every logger we own.
    """
    if name != _ROOT_LOGGER_NAME and not name.startswith(_ROOT_LOGGER_NAME + "."):
        name = f"{_ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)

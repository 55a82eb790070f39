"""Logging setup for tierform: one stderr handler, per-module child loggers."""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries that are chatty at INFO/DEBUG and drown out executor progress.
_NOISY_LIBRARIES = ("urllib3", "requests")


def level_for_verbosity(verbosity: int) -> int:
    """Map a -v count to a log level: 0 warning, 1 info, 2+ debug."""
    if verbosity <= 0:
        return logging.WARNING
    return logging.INFO if verbosity == 1 else logging.DEBUG


def setup_logging(level: int = logging.WARNING, format_string: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``tierform`` logger.

    Safe to call more than once; later calls only change the level, so the
    CLI can raise verbosity after the package has configured itself on import.

    Args:
        level: Level for the ``tierform`` namespace
        format_string: Custom format string (optional)

    Returns:
        The package root logger
    """
    logging.basicConfig(
        level=logging.WARNING,
        format=format_string or LOG_FORMAT,
        stream=sys.stderr,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    logger = logging.getLogger("tierform")
    logger.setLevel(level)
    # HTTP client debug output is only useful at -vv.
    third_party = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(third_party)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the tierform namespace, e.g. get_logger("execution.executor")."""
    return logging.getLogger(f"tierform.{name}")

"""
Logging helpers for Jamf Device Manager.
"""

from __future__ import annotations

import logging
from typing import Optional

PACKAGE_LOGGER = "jamf_device_manager"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def log_level(verbose: bool = False, quiet: bool = False) -> int:
    """Map the CLI verbosity flags to a level; both flags together cancel out."""
    if verbose == quiet:
        return logging.INFO
    return logging.DEBUG if verbose else logging.WARNING


def setup_logging(verbose: bool = False, quiet: bool = False, logger_name: str = PACKAGE_LOGGER) -> logging.Logger:
    """
    Configure logging for ``logger_name`` and return that logger.

    The level is applied to the top-level package of ``logger_name`` so every
    module logger in the package follows the CLI flags. Third-party loggers
    such as urllib3 stay at WARNING unless ``verbose`` is set.
    """
    level = log_level(verbose, quiet)
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)

    package = logger_name.split(".", 1)[0]
    logging.getLogger(package).setLevel(level)
    if verbose:
        logging.getLogger("urllib3").setLevel(logging.DEBUG)
    return logging.getLogger(logger_name)


def mask(value: Optional[str], visible: int = 4) -> str:
    """Show only the tail of an identifier in log lines."""
    if not value:
        return "<empty>"
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]

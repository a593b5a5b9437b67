"""
Fault-Isolated Logging
======================

Numerical code logs through safe_log so that a broken handler or a bad
format argument can never abort the calculation it is describing.
"""

import logging
from typing import Optional


def resolve_logger(logger: Optional[logging.Logger], name: str) -> logging.Logger:
    """Return the injected logger, or the module logger for `name`."""
    return logger if logger is not None else logging.getLogger(name)


def safe_log(logger: Optional[logging.Logger], level: int, msg: str, *args, **kwargs) -> None:
    """
    Log a message, swallowing any error raised by the logging machinery.

    Args:
        logger: Target logger (None disables logging)
        level: logging level, e.g. logging.INFO
        msg: %-style format string
        *args: Lazy format arguments
    """
    if logger is None:
        return
    try:
        logger.log(level, msg, *args, **kwargs)
    except Exception:  # noqa: BLE001 - logging must never break the pipeline
        pass

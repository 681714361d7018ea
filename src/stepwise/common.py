"""Common utility functions for the project."""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def init_logging(level: str) -> int:
    """
    Configure the root logger for a host process.

    Args:
        level: Level name such as ``"debug"`` or ``"warning"``; unknown names fall back to INFO.

    Returns:
        The numeric level that was applied.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=LOG_FORMAT, stream=sys.stdout, force=True)
    return numeric

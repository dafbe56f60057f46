"""Logging setup for difflint-ci."""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    """
    Configure the ``difflint_ci`` logger tree.

    Args:
        level: Log level name; defaults to ``DIFFLINT_LOG_LEVEL`` or INFO.
    """
    if level is None:
        level = os.getenv("DIFFLINT_LOG_LEVEL", "INFO")
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger("difflint_ci")
    logger.setLevel(numeric)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

"""Loguru sink configuration."""

import sys
from typing import Optional

from loguru import logger


def configure_logging(level: Optional[str] = None) -> None:
    """
    Replace loguru's default sink with a stderr sink at ``level``.

    With no level, the configured ``observability.log_level`` is used.
    """
    if level is None:
        from tacticbandit.core.config import get_config
        level = get_config().observability.log_level
    logger.remove()
    logger.add(sys.stderr, level=level.upper())

"""
Logging Setup

Library modules only create loggers; handlers are configured once by the
application entry point.
"""

import logging
from typing import Optional

from signal_engine.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger with a timestamped stream handler."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
    )

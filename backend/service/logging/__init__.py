"""
Logging setup for the flow editor core.

Modules log through ``getLogger(__name__)``; applications call
``setup_logging`` once at startup to attach a console handler.
"""

import logging
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_HANDLER_NAME = "flow-editor-console"


def setup_logging(level: Union[int, str] = "INFO", logger_name: Optional[str] = "service") -> logging.Logger:
    """Attach a timestamped console handler to ``logger_name``.

    Safe to call repeatedly; the handler is installed once and only
    the level changes on later calls.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    if not any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(handler)

    return logger


__all__ = ["setup_logging", "LOG_FORMAT", "DATE_FORMAT"]

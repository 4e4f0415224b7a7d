"""
Logging setup for netsink
"""

import logging
import logging.handlers
import sys
from datetime import datetime

from .config import ServerConfig
from .constants import LOG_DATE_FORMAT, LOG_DATE_FORMAT_PRECISE, LOG_FORMAT


class PrecisionFormatter(logging.Formatter):
    """Formatter whose timestamps carry microseconds when requested"""

    def __init__(self, precise: bool = False):
        super().__init__(LOG_FORMAT, datefmt=LOG_DATE_FORMAT_PRECISE if precise else LOG_DATE_FORMAT)

    def formatTime(self, record, datefmt=None):
        # time.strftime has no %f, datetime does
        return datetime.fromtimestamp(record.created).strftime(datefmt or self.datefmt)


def level_for(name: str) -> int:
    """
    Map a log level name to a logging level

    Connection and request lines are logged at INFO and must always reach
    the sink, so only "debug" moves the threshold; every other name is INFO.
    """
    return logging.DEBUG if name.lower() == "debug" else logging.INFO


def setup_logging(config: ServerConfig) -> logging.Logger:
    """
    Configure the process-wide log sink

    Args:
        config: Startup configuration (log_file, log_level, rotation settings)

    Returns:
        The configured root logger

    Raises:
        OSError: if the log file cannot be opened
    """
    if config.log_file:
        # Opening the file first lets a bad path fail before any handler is replaced
        handler = logging.handlers.RotatingFileHandler(
            config.log_file,
            mode="a",
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backups,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(sys.stderr)

    level = level_for(config.log_level)
    handler.setLevel(level)
    handler.setFormatter(PrecisionFormatter(precise=config.debug))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        # Replace a sink installed by an earlier call, leave others alone
        if getattr(existing, "netsink_sink", False):
            root_logger.removeHandler(existing)
            existing.close()
    handler.netsink_sink = True
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    return root_logger

import logging
import os
import sys
from datetime import datetime
from typing import Optional

from crashlog.core.config import LOG_DIR, LOG_LEVEL, LOG_TO_FILE

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Console formatter that tints each record by severity."""

    cyan = "\x1b[36m"
    green = "\x1b[32m"
    yellow = "\x1b[33m"
    red = "\x1b[31m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"

    COLORS = {
        logging.DEBUG: cyan,
        logging.INFO: green,
        logging.WARNING: yellow,
        logging.ERROR: red,
        logging.CRITICAL: bold_red,
    }

    def format(self, record):
        color = self.COLORS.get(record.levelno)
        fmt = color + _FORMAT + self.reset if color else _FORMAT
        return logging.Formatter(fmt, datefmt=_DATEFMT).format(record)


def setup_logging(level: Optional[int] = None, log_to_file: bool = LOG_TO_FILE) -> None:
    """Configure the root logger once for the service process."""
    if level is None:
        level = logging.getLevelName(LOG_LEVEL)
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()

    # Drop handlers from a previous call so records are not duplicated
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(level)

    # stderr keeps uvicorn's stdout clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter())
    root_logger.addHandler(console_handler)

    if log_to_file:
        os.makedirs(LOG_DIR, exist_ok=True)
        file_handler = logging.FileHandler(
            os.path.join(LOG_DIR, f"crashlog_{datetime.now().strftime('%Y%m%d')}.log")
        )
        file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
        root_logger.addHandler(file_handler)

    for logger_name in ["crashlog", "uvicorn", "uvicorn.error", "uvicorn.access", "main"]:
        named = logging.getLogger(logger_name)
        named.setLevel(level)
        named.propagate = True

    root_logger.info(
        "Logging initialized (level=%s, file=%s)",
        logging.getLevelName(level), "on" if log_to_file else "off",
    )

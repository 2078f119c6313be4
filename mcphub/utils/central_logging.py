"""
Logging setup for the hub client.

All modules log through ``mcphub.*`` loggers. The host application decides
where they go; ``setup_logging`` is a convenience for hosts that do not have
their own logging configuration.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

FMT = "%(asctime)s|%(levelname)-8s|%(name)-22s|%(message)s"
FMT_DETAIL = "%(asctime)s|%(levelname)-8s|%(name)-22s|%(filename)s:%(lineno)d|%(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES, BACKUP = 5 * 1024 * 1024, 3

ROOT_LOGGER = "mcphub"

_init = {"done": False}


class ColorFormatter(logging.Formatter):
    """Formatter with ANSI colors for console."""
    C = {10: '\033[36m', 20: '\033[32m', 30: '\033[33m', 40: '\033[31m', 50: '\033[35m'}
    R = '\033[0m'

    def format(self, r):
        return f"{self.C.get(r.levelno, '')}{super().format(r)}{self.R}"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    enable_console: bool = True,
) -> logging.Logger:
    """Attach console and optional rotating file handlers to ``mcphub``. Idempotent."""
    logger = logging.getLogger(ROOT_LOGGER)
    if _init["done"]:
        return logger

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    if enable_console:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(ColorFormatter(FMT, DATE_FMT))
        logger.addHandler(console)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=MAX_BYTES, backupCount=BACKUP, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FMT_DETAIL, DATE_FMT))
        logger.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _init["done"] = True
    return logger


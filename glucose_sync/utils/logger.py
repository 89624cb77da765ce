"""Root logger setup shared by the daemon and the CLI."""

from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_RETENTION_DAYS = 30

_NOISY_LOGGERS = ("urllib3", "httpx", "apscheduler", "telegram")


def _attach(root: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)


def setup_logging(
    log_level: str = "INFO",
    log_file: str = "./logs/glucose_sync.log",
    console: bool = True,
) -> logging.Logger:
    """Route all records to a midnight-rotating file and, optionally, stdout.

    The CLI passes ``console=False`` so log lines do not interleave with its
    own output. Calling this again replaces the previous handlers.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    if console:
        _attach(root, logging.StreamHandler(sys.stdout), level)

    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    _attach(
        root,
        TimedRotatingFileHandler(path, when="midnight", backupCount=LOG_RETENTION_DAYS, encoding="utf-8"),
        level,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root

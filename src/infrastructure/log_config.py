import logging
import os
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler

from src.config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 3


@dataclass(frozen=True)
class Loggers:
    """Named logger handles handed to components at construction."""
    server: logging.Logger
    sync: logging.Logger


def _named_logger(name: str, settings: Settings) -> logging.Logger:
    logger = logging.getLogger(f"insights.{name}")
    logger.setLevel(settings.log_level)
    if settings.log_dir:
        os.makedirs(settings.log_dir, exist_ok=True)
        handler = RotatingFileHandler(
            os.path.join(settings.log_dir, f"{name}.log"),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUPS,
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


def configure_logging(settings: Settings) -> Loggers:
    """
    Console output for everything on stdout; with LOG_DIR set, each named
    logger also writes to its own rotating file.
    """
    logging.basicConfig(
        level=settings.log_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    return Loggers(
        server=_named_logger("server", settings),
        sync=_named_logger("sync", settings),
    )

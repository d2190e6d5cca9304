"""
Log level resolution and logging setup.

The frontend used SILENT / ERROR / WARN / INFO / DEBUG level names; the same
names are accepted here and mapped onto stdlib logging levels. SILENT turns
logging off entirely.
"""
import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%SZ"

SILENT = logging.CRITICAL + 10

LOG_LEVELS = {
    "SILENT": SILENT,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def resolve_log_level(level_name: Optional[str], environment: str = "development") -> int:
    """Map a configured level name to a logging level.

    Unset or unknown names fall back to INFO in development and ERROR elsewhere.
    """
    if level_name:
        level = LOG_LEVELS.get(level_name.strip().upper())
        if level is not None:
            return level
    return logging.INFO if environment == "development" else logging.ERROR


def configure_logging(level_name: Optional[str], environment: str = "development") -> int:
    level = resolve_log_level(level_name, environment)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    # basicConfig is a no-op once handlers exist; keep the root level in sync
    logging.getLogger().setLevel(level)
    if level == SILENT:
        logging.disable(logging.CRITICAL)
    else:
        logging.disable(logging.NOTSET)
    return level

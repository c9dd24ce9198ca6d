"""
Logging configuration for the TrustPort transfer engine.

Creates rotating file-based loggers under logs/.
"""

import logging
import os
from pathlib import Path
from logging.handlers import RotatingFileHandler

# logs directory (relative to the working directory unless overridden)
LOG_DIR = Path(os.getenv("TRUSTPORT_LOG_DIR", "logs"))

APP_LOG_FILE = LOG_DIR / "trustport.log"
SETTLEMENT_LOG_FILE = LOG_DIR / "settlement.log"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5


def _setup_file_logger(name: str, log_file: Path, level: int, console: bool = True) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    # Avoid duplicate handlers if setup_logging is called multiple times
    logger.handlers = []

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(console_handler)
    return logger


def setup_logging(log_level: str = None) -> None:
    """
    Configure root + service loggers.

    Settlement gets its own file so the balance audit trail can be read
    without request noise; its records still propagate to the main log.
    """
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, log_level, logging.INFO)

    LOG_DIR.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    _setup_file_logger("trustport", APP_LOG_FILE, level)
    _setup_file_logger("trustport.settlement", SETTLEMENT_LOG_FILE, level, console=False)

    # Keep SQLAlchemy logs informative but not too noisy
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logging.getLogger("trustport").info("Logging configured. Log files in: %s", LOG_DIR)


def get_logger(name: str) -> logging.Logger:
    """
    Convenience wrapper to get a named logger.
    """
    return logging.getLogger(name)

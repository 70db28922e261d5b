"""Logging setup with user context."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "spendtracker"


class UserContextFilter(logging.Filter):
    """Add the logged-in user to log records."""

    def __init__(self):
        super().__init__()
        self.user: Optional[str] = None

    def filter(self, record):
        record.user = self.user or "guest"
        return True


_user_filter = UserContextFilter()


def configure_logging(
        level: str = "INFO",
        log_file: Optional[str] = None,
        max_bytes: int = 1024 * 1024,
        backup_count: int = 3,
) -> logging.Logger:
    """Attach console (and optionally rotating file) handlers to the app logger."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] [user:%(user)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # stdout belongs to the shell; console gets warnings only
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_user_filter)
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(_user_filter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the app logger, or a child of it for a module."""
    if not name or name == LOGGER_NAME:
        return logging.getLogger(LOGGER_NAME)
    if name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def set_user_context(user: Optional[str]):
    """Set the user name stamped on subsequent log records."""
    _user_filter.user = user

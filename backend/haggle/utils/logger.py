"""
Logging utilities.

WHAT: Process-wide logging for the negotiation service
WHY: Pairings and persistence failures must be traceable per room and session
HOW: stdlib logging; console at INFO, file at DEBUG, chatty libraries capped at WARNING
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from ..core.config import settings

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log every SQL statement, frame or request at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "uvicorn.access", "websockets")

HANDLER_PREFIX = "haggle"


def _own_handlers(root: logging.Logger) -> list[logging.Handler]:
    return [h for h in root.handlers if (h.get_name() or "").startswith(HANDLER_PREFIX)]


def setup_logging(log_file: Optional[str] = None, level: Optional[str] = None) -> Path:
    """
    Configure the root logger.

    Safe to call more than once: handlers from an earlier call are replaced,
    handlers installed by the host (uvicorn, pytest capture) are left alone.

    Args:
        log_file: Log file path (defaults to settings.LOG_FILE)
        level: Root level name (defaults to settings.LOG_LEVEL)

    Returns:
        Path of the log file
    """
    path = Path(log_file or settings.LOG_FILE)
    path.parent.mkdir(parents=True, exist_ok=True)
    level_name = (level or settings.LOG_LEVEL).upper()

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    for handler in _own_handlers(root):
        root.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.set_name(f"{HANDLER_PREFIX}.console")
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console_handler)

    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.set_name(f"{HANDLER_PREFIX}.file")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(file_handler)

    library_level = logging.DEBUG if settings.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    root.info(f"Logging initialized (level={level_name}, file={path})")
    return path


def get_logger(name: str) -> logging.Logger:
    """Module logger; call as get_logger(__name__)."""
    return logging.getLogger(name)

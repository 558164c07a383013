"""Centralized logging configuration module"""

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .config import settings

# Whether already initialized
_initialized = False

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: Optional[str] = None,
    base_name: str = "notegen.log",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> Path:
    """Configure console + rotating file logging once per process.

    Args:
        log_dir: Directory for log files (defaults to settings.log_dir)
        level: Level name (defaults to settings.log_level)
        base_name: Log file name
        max_bytes: Rotate when the file reaches this size
        backup_count: Number of rotated files to keep

    Returns:
        Path of the active log file
    """
    global _initialized

    logs_dir = Path(log_dir) if log_dir is not None else settings.log_dir
    log_file = logs_dir / base_name
    if _initialized:
        return log_file

    logs_dir.mkdir(parents=True, exist_ok=True)
    level_name = (level or settings.log_level).upper()

    # Write session separator
    with open(log_file, 'a', encoding='utf-8') as f:
        f.write("\n" + "=" * 100 + "\n")
        f.write(f"Session started at: {datetime.now().strftime(DATE_FORMAT)}\n")
        f.write("=" * 100 + "\n\n")

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level_name)
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Configure root logger
    logging.basicConfig(
        level=level_name,
        handlers=[console_handler, file_handler],
        force=True
    )

    logging.getLogger('notegen').setLevel(level_name)
    logging.getLogger('llm_interactions').setLevel(logging.INFO)

    # Reduce log level for third-party libraries
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)

    _initialized = True
    logging.getLogger(__name__).info(
        "Logging initialized: %s (max %d bytes, %d backups)",
        log_file.absolute(), max_bytes, backup_count,
    )
    return log_file


def reset_logging() -> None:
    """Allow setup_logging() to run again (tests)."""
    global _initialized
    _initialized = False

"""
Logging - Application logging configuration and disk persistence.

Provides:
- Python logging configuration with console output
- Activity persistence to daily files: relay-YYYY-MM-DD.log
- Automatic cleanup of old activity files
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
import logging

from utils import get_logs_dir

LOG_FILE_PREFIX = "relay-"

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    """
    Configure Python logging for the application.

    Sets up a root logger with console output. Activity lines are persisted
    separately by append_log().

    Args:
        level: Logging level (default: INFO)
    """
    root_logger = logging.getLogger()

    # Only configure if not already configured
    if root_logger.handlers:
        return

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def get_log_file_path(date: Optional[datetime] = None, logs_dir: Optional[Path] = None) -> Path:
    """Get the log file path for a specific date (defaults to today)."""
    if date is None:
        date = datetime.now()
    filename = f"{LOG_FILE_PREFIX}{date.strftime('%Y-%m-%d')}.log"
    return (logs_dir or get_logs_dir()) / filename


def append_log(message: str, retention_days: int = 0, logs_dir: Optional[Path] = None) -> None:
    """
    Append a line to today's activity file.

    Args:
        message: The activity line, without timestamp
        retention_days: If 0, don't save to disk
    """
    if retention_days <= 0:
        return

    log_path = get_log_file_path(logs_dir=logs_dir)
    stamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    try:
        with open(log_path, 'a', encoding='utf-8') as f:
            f.write(f"[{stamp}] {message}\n")
    except OSError as e:
        logger.warning(f"Could not write activity log {log_path}: {e}")


def cleanup_old_logs(retention_days: int, logs_dir: Optional[Path] = None) -> int:
    """
    Delete activity files older than retention_days.

    Returns:
        Number of files deleted
    """
    if retention_days < 0:
        return 0

    logs_dir = logs_dir or get_logs_dir()
    cutoff_date = datetime.now() - timedelta(days=retention_days)
    deleted_count = 0

    for file_path in logs_dir.glob(f"{LOG_FILE_PREFIX}*.log"):
        try:
            date_str = file_path.stem.replace(LOG_FILE_PREFIX, "")
            file_date = datetime.strptime(date_str, "%Y-%m-%d")
            if file_date < cutoff_date:
                file_path.unlink()
                deleted_count += 1
        except (ValueError, OSError):
            # Skip files that don't match expected format
            pass

    return deleted_count


class ActivityLog:
    """Receives activity(str, bool) signals and logs / persists them."""

    def __init__(self, retention_days: int = 0, logs_dir: Optional[Path] = None):
        self.retention_days = retention_days
        self.logs_dir = logs_dir

    def record(self, message: str, is_error: bool = False) -> None:
        if is_error:
            logger.warning(message)
        else:
            logger.info(message)
        prefix = "ERROR " if is_error else ""
        append_log(f"{prefix}{message}", self.retention_days, self.logs_dir)

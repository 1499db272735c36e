"""
Application logging for nrqlctl.

While the dashboard runs, curses owns the terminal, so nothing can be
printed. Instead every component writes to a single append-only log file
that can be followed with `tail -f` from another terminal.

Design Decisions:
    - One plain-text file for the whole process
    - Append-only writes to prevent data loss
    - Human-readable format with timestamps and structured fields
    - UTC timestamps for consistency across timezones
    - A lock serializes writes from acquisition worker threads
"""

from __future__ import annotations

import datetime
import threading
from pathlib import Path
from typing import Optional

from .paths import app_log_path


class AppLogger:
    """
    Minimal append-only application logger.

    Attributes:
        path: The filesystem path to the log file.

    Log Line Format:
        <timestamp> [component=<name>] <LEVEL> <message>

    Example:
        >>> logger = AppLogger()
        >>> logger.info("acquisition", "Worker started")
        # Writes: 2024-01-15T12:00:00Z [component=acquisition] INFO Worker started
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        """
        Initialize the logger.

        Creates the log directory if it doesn't exist, ensuring the first
        log write won't fail due to missing directories.

        Args:
            path: Log file to append to. Defaults to app_log_path().
        """
        self.path = path or app_log_path()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _ts(self) -> str:
        """
        Generate an ISO 8601 UTC timestamp for log entries.

        Returns:
            str: Timestamp in format "2024-01-15T12:00:00Z"
        """
        return (
            datetime.datetime.now(datetime.timezone.utc)
            .isoformat(timespec="seconds")
            # Replace the verbose +00:00 suffix with the more compact Z
            .replace("+00:00", "Z")
        )

    def log(self, component: str, level: str, message: str) -> None:
        """
        Write a structured log line to the log file.

        Args:
            component: The part of nrqlctl emitting the log (e.g., "session").
            level: The log severity level (e.g., "INFO", "WARN", "ERROR").
            message: The human-readable log message.
        """
        line = (
            f"{self._ts()} "
            f"[component={component}] "
            f"{level.upper()} {message}\n"
        )
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)

    def info(self, component: str, message: str) -> None:
        """Log an informational message."""
        self.log(component, "INFO", message)

    def warn(self, component: str, message: str) -> None:
        """
        Log a warning message.

        Use for failures nrqlctl absorbs and keeps running through, like a
        remote fetch error or an unreadable session file.
        """
        self.log(component, "WARN", message)

    def error(self, component: str, message: str) -> None:
        """Log an error message."""
        self.log(component, "ERROR", message)

"""
Exceptions and error logging for occurrences.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class OccurrenceError(Exception):
    """Base class for errors raised to callers of the occurrences API."""


class OccurrenceExistsError(OccurrenceError, FileExistsError):
    """An occurrence file with the target name already exists."""

    def __init__(self, path: str):
        super().__init__(f"File already exists: {path}")
        self.path = path


class ConfigError(OccurrenceError, ValueError):
    """Invalid or unsupported configuration file."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting OCCURRENCES_HOME."""
    home = os.environ.get("OCCURRENCES_HOME")
    if home:
        return Path(home) / "occurrences-errors.log"
    return Path.home() / ".occurrences" / "occurrences-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path

"""
Logging configuration for occurrences.

Suppress verbose library output by default for better UX.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Loggers that are noisy at INFO/DEBUG
_LIBRARY_LOGGERS = ("watchdog", "asyncio", "mcp")


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose library output.

    This silences:
    - watchdog observer and inotify chatter
    - asyncio debug messages
    - Library warnings (deprecation, etc.)

    Args:
        quiet: If True, suppress verbose output. If False, show everything.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        for name in _LIBRARY_LOGGERS:
            logging.getLogger(name).setLevel(logging.ERROR)
    else:
        warnings.filterwarnings("default")
        for name in _LIBRARY_LOGGERS:
            logging.getLogger(name).setLevel(logging.NOTSET)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("occurrences").setLevel(logging.DEBUG)
    # watchdog is very chatty at DEBUG
    logging.getLogger("watchdog").setLevel(logging.INFO)


def configure_ops_log(log_dir) -> RotatingFileHandler:
    """Configure a persistent operations log.

    Writes to {log_dir}/occurrences-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed when the session ends.
    """
    log_path = Path(log_dir) / "occurrences-ops.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    occ_logger = logging.getLogger("occurrences")
    occ_logger.addHandler(handler)
    # Let INFO through even in quiet mode
    if occ_logger.level == logging.NOTSET or occ_logger.level > logging.INFO:
        occ_logger.setLevel(logging.INFO)

    return handler

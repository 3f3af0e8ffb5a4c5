"""
Logging infrastructure for the vendor scorecard engine.

Provides:
- Structured logging with timestamps
- Different log levels (DEBUG, INFO, WARNING, ERROR)
- Console output, plus an optional per-pass log file
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..config import get_log_dir

_FORMAT = "%(asctime)s | %(levelname)-8s | %(filename)s:%(lineno)d | %(message)s"
_PHASE_FORMAT = "%(asctime)s | %(levelname)-8s | {phase} | %(filename)s:%(lineno)d | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S,%f"

# Third-party loggers routed through the root handler
_EXTERNAL_LOGGERS = ("pymysql",)


class MillisecondsFormatter(logging.Formatter):
    """Custom formatter that includes milliseconds and aligns log levels."""

    def formatTime(self, record, datefmt=None):  # noqa: N802 - must match parent class method name
        """Override formatTime to include milliseconds."""
        ct = datetime.fromtimestamp(record.created)
        if datefmt and "%f" in datefmt:
            s = ct.strftime(datefmt.replace(",%f", ""))
            return s + f",{int(record.msecs):03d}"
        elif datefmt:
            return ct.strftime(datefmt)
        else:
            return ct.strftime("%Y-%m-%d %H:%M:%S") + f",{int(record.msecs):03d}"


def _format_for(phase: Optional[str]) -> str:
    return _PHASE_FORMAT.format(phase=phase) if phase else _FORMAT


def configure_global_logging(
    log_level: str = "INFO",
    phase: Optional[str] = None,
    log_file: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> Optional[Path]:
    """
    Configure all logging (root + third-party libraries) with unified format.

    Call this early in application startup to ensure all logs are consistently formatted.

    Args:
        log_level: Console logging level (DEBUG, INFO, WARNING, ERROR)
        phase: Optional pass name (e.g., "reconcile")
        log_file: Optional log file name; the file receives DEBUG and above
        log_dir: Directory for log files (defaults to SCORECARD_LOG_DIR or logs/)

    Returns:
        Path of the log file, if one was opened
    """
    level = getattr(logging, log_level.upper())
    formatter = MillisecondsFormatter(_format_for(phase), datefmt=_DATEFMT)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    root_handler = logging.StreamHandler(sys.stdout)
    root_handler.setLevel(level)
    root_handler.setFormatter(formatter)
    root_logger.addHandler(root_handler)

    log_path = None
    if log_file:
        log_dir = log_dir or get_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / log_file

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)  # Log everything to file
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(logging.DEBUG if log_path else level)

    for lib_name in _EXTERNAL_LOGGERS:
        lib_logger = logging.getLogger(lib_name)
        lib_logger.handlers.clear()
        lib_logger.propagate = True
        lib_logger.setLevel(logging.WARNING)

    if log_path:
        logging.getLogger(__name__).info(f"Logging to file: {log_path}")
    return log_path

"""
goplay.core - Foundation layer: logging, timing and process running.
"""

from goplay.core.utils import (
    # Logging
    log,
    Logger,
    # Constants
    HASHBANG,
    SUBDIR,
    ERROR,
)
from goplay.core.timing import format_duration, timing_summary
from goplay.core.process import RunHandle, exit_status, run_and_wait, start

__all__ = [
    # Logging
    "log",
    "Logger",
    # Constants
    "HASHBANG",
    "SUBDIR",
    "ERROR",
    # Timing
    "format_duration",
    "timing_summary",
    # Processes
    "RunHandle",
    "exit_status",
    "run_and_wait",
    "start",
]

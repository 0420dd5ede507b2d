"""
Shared utilities for goplay.

Stdout belongs to the program being run, so everything goplay reports goes
to stderr.
"""

from __future__ import annotations

import sys
from typing import Optional, TextIO

# =============================================================================
# Constants
# =============================================================================

# Recognized interpreter line; scripts starting with it can be run directly.
HASHBANG = b"#!/usr/bin/env goplay"

# Default cache directory, relative to the script's directory.
SUBDIR = ".goplay"

# Exit status for setup and toolchain failures.
ERROR = 1


# =============================================================================
# Logging
# =============================================================================


class Logger:
    """Colored stderr logger with --no-color and --verbose support.

    Warnings and errors always print; everything else only in verbose mode.
    """

    COLORS = {
        "reset": "\033[0m",
        "red": "\033[91m",
        "green": "\033[92m",
        "yellow": "\033[93m",
        "cyan": "\033[96m",
        "bold": "\033[1m",
        "dim": "\033[2m",
    }

    def __init__(
        self,
        use_color: Optional[bool] = None,
        verbose: bool = False,
        stream: Optional[TextIO] = None,
    ):
        self._stream = stream
        self._verbose = verbose
        if use_color is None:
            self._use_color = self.stream.isatty()
        else:
            self._use_color = use_color

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so pytest's capsys replacement of sys.stderr is seen.
        return self._stream if self._stream is not None else sys.stderr

    @property
    def verbose(self) -> bool:
        return self._verbose

    def set_color(self, use_color: bool) -> None:
        """Set whether to use color output."""
        self._use_color = use_color

    def set_verbose(self, verbose: bool) -> None:
        """Set whether info and debug messages are shown."""
        self._verbose = verbose

    def _color(self, text: str, color: str) -> str:
        if not self._use_color:
            return text
        return f"{self.COLORS.get(color, '')}{text}{self.COLORS['reset']}"

    def _write(self, line: str) -> None:
        print(line, file=self.stream, flush=True)

    def header(self, message: str) -> None:
        """Print a section header."""
        if self._verbose:
            self._write(
                f"{self._color('===', 'cyan')} {self._color(message, 'bold')} {self._color('===', 'cyan')}"
            )

    def info(self, message: str) -> None:
        if self._verbose:
            self._write(f"goplay: {message}")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._write(f"goplay: {self._color(message, 'dim')}")

    def success(self, message: str) -> None:
        if self._verbose:
            self._write(f"goplay: {self._color('[OK]', 'green')} {message}")

    def warning(self, message: str) -> None:
        self._write(f"goplay: {self._color('[WARN]', 'yellow')} {message}")

    def error(self, message: str) -> None:
        self._write(f"goplay: {self._color('[ERROR]', 'red')} {message}")

    def raw(self, text: str) -> None:
        """Write text verbatim, e.g. captured toolchain output."""
        self.stream.write(text)
        if text and not text.endswith("\n"):
            self.stream.write("\n")
        self.stream.flush()


# Global logger instance
log = Logger()

# goplay/errors.py
from __future__ import annotations

from typing import Sequence

__all__ = [
    "GoplayError",
    "UsageError",
    "SetupError",
    "ToolchainError",
]


class GoplayError(Exception):
    """Base error for the goplay package."""

    exit_code = 1


class UsageError(GoplayError):
    """Raised when goplay is invoked without a script."""

    exit_code = 2


class SetupError(GoplayError):
    """Raised when the cache directory, script or config cannot be accessed."""
    def __init__(self, message: str):
        super().__init__(message)


class ToolchainError(GoplayError):
    """Raised when a compile, link or build invocation fails.

    ``output`` is the combined stdout+stderr of the failing command and is
    shown to the user verbatim.
    """
    def __init__(self, command: Sequence[str], output: str, returncode: int):
        self.command = list(command)
        self.output = output
        self.returncode = returncode
        msg = f"{' '.join(self.command)} failed"
        if returncode >= 0:
            msg += f" (exit status {returncode})"
        super().__init__(msg)

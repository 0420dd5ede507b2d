"""
Process runner for goplay.

Starts compiled programs with the caller's stdio and environment and turns
their exit status into goplay's own.
"""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from goplay.core.utils import log
from goplay.errors import SetupError


@dataclass
class RunHandle:
    """A running program and the arguments it was started with."""

    process: subprocess.Popen
    args: tuple[str, ...] = field(default_factory=tuple)
    killed: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    def poll(self) -> Optional[int]:
        return self.process.poll()

    def wait(self) -> int:
        return self.process.wait()

    def kill(self) -> None:
        """Forcibly terminate the program and reap it.

        Marks the handle as killed so its exit is not mistaken for the
        program finishing on its own.
        """
        self.killed = True
        if self.process.poll() is not None:
            return
        log.debug(f"Killing pid {self.process.pid}")
        try:
            self.process.kill()
        except ProcessLookupError:
            pass
        self.process.wait()


def start(binary: Path, args: Sequence[str] = ()) -> RunHandle:
    """Start the binary with inherited stdin/stdout/stderr and environment."""
    argv = [str(binary), *args]
    try:
        process = subprocess.Popen(argv, env=os.environ.copy())
    except OSError as e:
        raise SetupError(f"Could not execute: {argv!r}\n{e}") from e
    log.debug(f"Started pid {process.pid}: {' '.join(argv)}")
    return RunHandle(process=process, args=tuple(args))


def signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


def exit_status(returncode: int) -> int:
    """Translate a child's return code into goplay's exit status.

    Normal exits pass through unchanged. A child killed by signal N exits
    goplay with 128 + N, as a shell would.
    """
    if returncode >= 0:
        return returncode
    signum = -returncode
    log.warning(f"Program terminated by {signal_name(signum)}")
    return 128 + signum


def run_and_wait(binary: Path, args: Sequence[str] = ()) -> int:
    """Run the binary to completion and return the exit status to propagate."""
    handle = start(binary, args)
    try:
        returncode = handle.wait()
    except KeyboardInterrupt:
        # The terminal delivered SIGINT to the child too; report how it ends.
        returncode = handle.wait()
    return exit_status(returncode)

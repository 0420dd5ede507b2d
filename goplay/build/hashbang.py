"""
Hashbang handling for goplay.

The Go compiler rejects a `#!` first line, so while a build runs the line is
commented out in place (`#!` -> `//`) and restored afterwards. Both markers
are two bytes, so the line length and every offset in the file stay the same.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO, Optional

from goplay.core.utils import HASHBANG, log
from goplay.errors import SetupError

COMMENT = b"//"
INTERPRETER = HASHBANG[:2]

# (inode, size, mtime_ns) of the script as goplay last left it
Snapshot = tuple[int, int, int]


def read_first_line(fh: BinaryIO) -> bytes:
    """Read the first line, terminator included, from offset 0."""
    fh.seek(0)
    return fh.readline()


def has_hashbang(fh: BinaryIO, hashbang: bytes = HASHBANG) -> bool:
    """Check if the file's first line is exactly the interpreter line."""
    return read_first_line(fh).rstrip(b"\r\n") == hashbang


def _overwrite_marker(fh: BinaryIO, marker: bytes) -> None:
    fh.seek(0)
    fh.write(marker)
    fh.flush()


def _snapshot(st: os.stat_result) -> Snapshot:
    return st.st_ino, st.st_size, st.st_mtime_ns


class HashbangGuard:
    """Comment out the hashbang for the duration of a build.

    Usage:
        with HashbangGuard(script.path) as guard:
            compile(...)
        # first line restored, even if compile raised

    The restore runs at most once, before the file handle is released, on
    every exit path. The file's timestamps are put back afterwards so the
    rewrite does not count as an edit.

    If the file was saved while the build ran (in place or by renaming a new
    file over it), nothing is restored: the new content and its modification
    time are left alone and `modified_during_build` is set.
    """

    def __init__(self, path: Path, hashbang: bytes = HASHBANG) -> None:
        self.path = path
        self.hashbang = hashbang
        self.had_hashbang = False
        self.modified_during_build = False
        self._fh: Optional[BinaryIO] = None
        self._times: Optional[tuple[int, int]] = None
        self._left: Optional[Snapshot] = None

    def __enter__(self) -> "HashbangGuard":
        try:
            st = self.path.stat()
            self._fh = open(self.path, "r+b")
        except OSError as e:
            raise SetupError(f"Could not open file {self.path}: {e}") from e
        self._times = (st.st_atime_ns, st.st_mtime_ns)

        try:
            self.had_hashbang = has_hashbang(self._fh, self.hashbang)
            if self.had_hashbang:
                _overwrite_marker(self._fh, COMMENT)
                log.debug(f"Commented out interpreter line of {self.path.name}")
            self._left = _snapshot(os.fstat(self._fh.fileno()))
        except OSError as e:
            self._release()
            raise SetupError(f"Could not comment the interpreter line: {e}") from e
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            self._release()
        except SetupError as e:
            if exc_val is None:
                raise
            # Keep the build error propagating; report the restore failure too.
            log.error(str(e))
        return None

    def _changed_since_enter(self, fh: BinaryIO) -> bool:
        try:
            current = _snapshot(self.path.stat())
        except FileNotFoundError:
            return True
        if current != self._left:
            return True
        if self.had_hashbang:
            fh.seek(0)
            return fh.read(len(COMMENT)) != COMMENT
        return False

    def _release(self) -> None:
        fh, self._fh = self._fh, None
        if fh is None:
            return
        try:
            self.modified_during_build = self._changed_since_enter(fh)
            if self.modified_during_build:
                log.warning(f"{self.path} changed during the build; leaving it as saved")
            elif self.had_hashbang:
                _overwrite_marker(fh, INTERPRETER)
        except OSError as e:
            raise SetupError(f"Could not restore the interpreter line of {self.path}: {e}") from e
        finally:
            fh.close()

        if self.had_hashbang and not self.modified_during_build and self._times is not None:
            try:
                os.utime(self.path, ns=self._times)
            except OSError as e:
                log.warning(f"Could not restore modification time of {self.path}: {e}")

"""
Build caching for goplay.

Locates cached binaries and decides whether a script needs recompiling.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from goplay.core.utils import log
from goplay.build.config import CacheConfig, ScriptRef
from goplay.errors import SetupError


# =============================================================================
# Binary Location
# =============================================================================


@dataclass(frozen=True)
class BinaryRef:
    """Where the compiled program for a script lives."""

    directory: Path
    path: Path

    def exists(self) -> bool:
        return self.path.is_file()


def toolchain_tag(config: CacheConfig) -> str:
    """Target platform component of the cache path, e.g. "linux_amd64".

    Keeps binaries for different platforms apart in a shared cache.
    """
    return f"{config.goos}_{config.goarch}"


def flatten_directory(directory: Path) -> str:
    """Turn "/home/me/bin" into "_home_me_bin" for use as one path component."""
    flat = str(directory).replace(":", "")
    for sep in {os.sep, os.altsep or os.sep, "/"}:
        flat = flat.replace(sep, "_")
    return flat


def binary_ref(script: ScriptRef, config: CacheConfig) -> BinaryRef:
    """Compute the cache directory and binary path. No side effects."""
    cache_root = Path(config.cache_directory).expanduser()
    if cache_root.is_absolute():
        binary_dir = cache_root / flatten_directory(script.directory) / toolchain_tag(config)
    else:
        binary_dir = script.directory / cache_root / toolchain_tag(config)

    name = script.stem
    # Windows does not like running binaries without the ".exe" extension
    if config.goos == "windows":
        name += ".exe"
    return BinaryRef(directory=binary_dir, path=binary_dir / name)


def locate(script: ScriptRef, config: CacheConfig) -> BinaryRef:
    """Compute the binary location and make sure its directory exists."""
    binary = binary_ref(script, config)
    try:
        binary.directory.mkdir(mode=0o750, parents=True, exist_ok=True)
    except OSError as e:
        raise SetupError(f"Could not make directory {binary.directory}: {e}") from e
    return binary


# =============================================================================
# Staleness
# =============================================================================


def needs_build(script: ScriptRef, binary: BinaryRef, force: bool = False) -> bool:
    """Check whether the script must be compiled before running.

    Returns True if:
    - force is set
    - no binary exists yet
    - the script was modified after the binary (equal times count as fresh)
    """
    if force:
        log.debug("Forced compilation")
        return True

    try:
        binary_mtime = binary.path.stat().st_mtime_ns
    except FileNotFoundError:
        log.debug(f"No cached binary at {binary.path}")
        return True
    except OSError as e:
        raise SetupError(f"Could not stat {binary.path}: {e}") from e

    try:
        script_mtime = script.path.stat().st_mtime_ns
    except OSError as e:
        raise SetupError(f"Could not stat {script.path}: {e}") from e

    stale = script_mtime > binary_mtime
    if stale:
        log.debug(f"{script.name} modified since last build")
    else:
        log.debug(f"{script.name} unchanged, using {binary.path}")
    return stale


def stamp_binary(binary: BinaryRef, mtime_ns: int) -> None:
    """Give the binary the script's pre-build modification time.

    Both timestamps then come from the same instant, so the next run is a
    cache hit unless the script is edited again.
    """
    try:
        os.utime(binary.path, ns=(mtime_ns, mtime_ns))
    except OSError as e:
        log.warning(f"Could not set modification time of {binary.path}: {e}")

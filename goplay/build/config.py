"""
Configuration for goplay.

Script resolution, the merged cache configuration, and the `key value`
configuration file loader.
"""

from __future__ import annotations

import dataclasses
import os
import platform
import re
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional

from goplay.core.utils import SUBDIR, log
from goplay.errors import SetupError

# =============================================================================
# Constants
# =============================================================================

SYSTEM_CONFIG = Path("/etc/goplayrc")
USER_CONFIG_NAME = ".goplayrc"
PROJECT_CONFIG_NAME = ".goplayrc"

DEFAULT_WATCHED_EXTENSIONS = (".go",)

_CONFIG_LINE_RX = re.compile(r"^[ \t]*([A-Za-z][\w-]*)[ \t]+(.+?)[ \t\r]*$", re.MULTILINE)

_TRUE_VALUES = {"yes", "true", "1", "on"}
_FALSE_VALUES = {"no", "false", "0", "off"}

# Normalized key -> CacheConfig field. Normalized keys are lower case with
# "-" and "_" removed; the aliases are the key names of older releases.
CONFIG_KEYS: dict[str, str] = {
    "forcecompile": "force_compile",
    "wholedirectorybuild": "whole_directory_build",
    "completebuild": "whole_directory_build",
    "hotreload": "hot_reload",
    "hotreloadrecursive": "hot_reload_recursive",
    "watchedextensions": "watched_extensions",
    "hotreloadwatchextensions": "watched_extensions",
    "cachedirectory": "cache_directory",
    "goplaydirectory": "cache_directory",
    "gocommand": "go_command",
}

_BOOL_FIELDS = {"force_compile", "whole_directory_build", "hot_reload", "hot_reload_recursive"}

# Python platform names -> Go's GOOS / GOARCH names.
_GOOS = {"win32": "windows", "cygwin": "windows", "darwin": "darwin", "linux": "linux"}
_GOARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ScriptRef:
    """The Go source file being run. Resolved once at startup."""

    path: Path

    @classmethod
    def from_path(cls, script: str | os.PathLike) -> "ScriptRef":
        path = Path(script).expanduser()
        try:
            path = path.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise SetupError(f"Could not open file {script}: {e}") from e
        if not path.is_file():
            raise SetupError(f"Could not open file {script}: not a regular file")
        return cls(path=path)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix

    @property
    def stem(self) -> str:
        return self.path.stem


@dataclass(frozen=True)
class CacheConfig:
    """Resolved settings for one goplay invocation."""

    force_compile: bool = False
    whole_directory_build: bool = False
    hot_reload: bool = False
    hot_reload_recursive: bool = False
    watched_extensions: tuple[str, ...] = DEFAULT_WATCHED_EXTENSIONS
    cache_directory: str = SUBDIR
    go_command: tuple[str, ...] = ("go",)
    goos: str = field(default_factory=lambda: host_goos())
    goarch: str = field(default_factory=lambda: host_goarch())

    @property
    def watches_tree(self) -> bool:
        """Whether hot reload watches the script's whole directory tree."""
        return self.whole_directory_build or self.hot_reload_recursive

    def with_implications(self) -> "CacheConfig":
        """Apply -R => -r => -f."""
        hot_reload = self.hot_reload or self.hot_reload_recursive
        return dataclasses.replace(
            self,
            hot_reload=hot_reload,
            force_compile=self.force_compile or hot_reload,
        )


# =============================================================================
# Toolchain Defaults
# =============================================================================


def host_goos() -> str:
    goos = os.environ.get("GOOS")
    if goos:
        return goos
    for prefix in ("freebsd", "openbsd", "netbsd"):
        if sys.platform.startswith(prefix):
            return prefix
    return _GOOS.get(sys.platform, sys.platform)


def host_goarch() -> str:
    goarch = os.environ.get("GOARCH")
    if goarch:
        return goarch
    machine = platform.machine().lower()
    return _GOARCH.get(machine, machine)


def default_go_command() -> tuple[str, ...]:
    """`$GOROOT/bin/go` when GOROOT points at a toolchain, else `go` on PATH."""
    goroot = os.environ.get("GOROOT")
    if goroot:
        exe = "go.exe" if sys.platform == "win32" else "go"
        candidate = Path(goroot) / "bin" / exe
        if candidate.is_file():
            return (str(candidate),)
    return ("go",)


def default_config() -> CacheConfig:
    return CacheConfig(go_command=default_go_command())


# =============================================================================
# Configuration Files
# =============================================================================


def normalize_key(key: str) -> str:
    return key.lower().replace("-", "").replace("_", "")


def parse_bool(value: str, source: str, key: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise SetupError(f"{source}: invalid boolean {value!r} for {key} (use yes or no)")


def parse_extensions(value: str) -> tuple[str, ...]:
    """Parse "go, tmpl,.html" into (".go", ".tmpl", ".html"); "none" clears."""
    if value.strip().lower() == "none":
        return ()
    extensions = []
    for item in value.split(","):
        item = item.strip().lower()
        if not item:
            continue
        extensions.append(item if item.startswith(".") else f".{item}")
    return tuple(extensions)


def parse_config_text(text: str, source: str = "<config>") -> dict[str, object]:
    """Parse configuration text into CacheConfig field overrides.

    Unknown keys and comment lines are ignored; the last occurrence of a key
    wins.
    """
    overrides: dict[str, object] = {}
    for match in _CONFIG_LINE_RX.finditer(text):
        raw_key, value = match.group(1), match.group(2)
        field_name = CONFIG_KEYS.get(normalize_key(raw_key))
        if field_name is None:
            continue
        if field_name in _BOOL_FIELDS:
            overrides[field_name] = parse_bool(value, source, raw_key)
        elif field_name == "watched_extensions":
            overrides[field_name] = parse_extensions(value)
        elif field_name == "go_command":
            overrides[field_name] = tuple(shlex.split(value))
        else:
            overrides[field_name] = value
    return overrides


def read_config_file(path: Path) -> Optional[dict[str, object]]:
    """Read one configuration file. Returns None if it does not exist."""
    if not path.is_file():
        return None
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SetupError(f"Could not read configuration file [{path}]: {e}") from e
    return parse_config_text(text, source=str(path))


def user_config() -> Optional[Path]:
    """~/.goplayrc, or None when there is no home directory to look in."""
    try:
        return Path.home() / USER_CONFIG_NAME
    except (RuntimeError, KeyError) as e:
        log.debug(f"No home directory, skipping user configuration: {e}")
        return None


def config_files(script: ScriptRef) -> list[Path]:
    """Configuration files in increasing precedence."""
    files = [SYSTEM_CONFIG, user_config(), script.directory / PROJECT_CONFIG_NAME]
    return [path for path in files if path is not None]


def merge_config(base: CacheConfig, overrides: Mapping[str, object]) -> CacheConfig:
    return dataclasses.replace(base, **overrides)


def load_config(
    script: ScriptRef,
    flags: Optional[Mapping[str, bool]] = None,
    files: Optional[Iterable[Path]] = None,
    base: Optional[CacheConfig] = None,
) -> CacheConfig:
    """Build the CacheConfig: defaults <- config files <- command-line flags.

    Command-line flags can only switch options on; a false flag leaves the
    file value in place.
    """
    config = base if base is not None else default_config()
    for path in config_files(script) if files is None else files:
        overrides = read_config_file(path)
        if overrides:
            config = merge_config(config, overrides)

    if flags:
        config = merge_config(config, {name: True for name, on in flags.items() if on})

    return config.with_implications()

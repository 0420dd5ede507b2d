"""
Build phases for goplay.

Invocations of the Go toolchain: whole-directory builds and single-file
compile + link. The toolchain is opaque; its combined output is captured
and handed back verbatim on failure.
"""

from __future__ import annotations

import os
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Sequence

from goplay.core.utils import log
from goplay.core.timing import timing_summary
from goplay.build.caching import BinaryRef, stamp_binary, toolchain_tag
from goplay.build.config import CacheConfig, ScriptRef
from goplay.build.hashbang import HashbangGuard
from goplay.errors import SetupError, ToolchainError

OBJECT_NAME = "_go_.o"
IMPORTCFG_NAME = "importcfg"

# `go list` template producing an importcfg for the standard library.
PACKAGEFILE_TEMPLATE = "{{if .Export}}packagefile {{.ImportPath}}={{.Export}}{{end}}"


# =============================================================================
# Toolchain
# =============================================================================


@dataclass(frozen=True)
class Toolchain:
    """Command lines for the external Go toolchain."""

    command: tuple[str, ...]
    goos: str
    goarch: str

    @classmethod
    def from_config(cls, config: CacheConfig) -> "Toolchain":
        return cls(command=tuple(config.go_command), goos=config.goos, goarch=config.goarch)

    @property
    def tag(self) -> str:
        return f"{self.goos}_{self.goarch}"

    def env(self) -> dict[str, str]:
        """Child environment targeting the platform the cache is keyed on."""
        env = dict(os.environ)
        env["GOOS"] = self.goos
        env["GOARCH"] = self.goarch
        return env

    def import_config_args(self) -> list[str]:
        return [*self.command, "list", "-export", "-f", PACKAGEFILE_TEMPLATE, "std"]

    def compile_args(self, source: Path, obj: Path, importcfg: Path) -> list[str]:
        return [
            *self.command, "tool", "compile",
            "-p", "main",
            "-importcfg", str(importcfg),
            "-o", str(obj),
            str(source),
        ]

    def link_args(self, obj: Path, binary: Path, importcfg: Path) -> list[str]:
        return [
            *self.command, "tool", "link",
            "-importcfg", str(importcfg),
            "-o", str(binary),
            str(obj),
        ]

    def build_args(self, binary: Path) -> list[str]:
        return [*self.command, "build", "-o", str(binary), "."]


@dataclass(frozen=True)
class BuildOutcome:
    """Result of bringing a script's binary up to date."""

    built: bool
    binary: BinaryRef
    output: str = ""
    timings: dict[str, float] = field(default_factory=dict)


# =============================================================================
# Tool Invocation
# =============================================================================


def run_tool(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    env: Optional[dict[str, str]] = None,
    timings: Optional[dict[str, float]] = None,
    phase: Optional[str] = None,
) -> str:
    """Run a toolchain command, returning its combined stdout+stderr.

    When `timings` and `phase` are given, the wall-clock time of the command
    is added to `timings[phase]`, failed runs included.

    Raises:
        ToolchainError: If the command cannot be started or exits nonzero.
    """
    log.debug(f"$ {' '.join(args)}")
    started = time.monotonic()
    try:
        result = subprocess.run(
            list(args),
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except OSError as e:
        raise ToolchainError(args, f"Could not execute {args[0]}: {e}\n", -1) from e
    finally:
        if timings is not None and phase:
            elapsed = time.monotonic() - started
            timings[phase] = round(timings.get(phase, 0.0) + elapsed, 3)

    if result.returncode != 0:
        raise ToolchainError(args, result.stdout, result.returncode)
    return result.stdout


@contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """Temporarily change the process working directory.

    The previous directory is restored even if the body raises.
    """
    previous = Path.cwd()
    if previous == path:
        yield path
        return

    os.chdir(path)
    try:
        yield path
    finally:
        os.chdir(previous)


# =============================================================================
# Build Modes
# =============================================================================


def build_directory(
    script: ScriptRef,
    binary: BinaryRef,
    toolchain: Toolchain,
    timings: Optional[dict[str, float]] = None,
) -> str:
    """Build the script's whole directory as one program."""
    with working_directory(script.directory):
        return run_tool(toolchain.build_args(binary.path), env=toolchain.env(), timings=timings, phase="build")


def write_import_config(
    binary: BinaryRef,
    toolchain: Toolchain,
    timings: Optional[dict[str, float]] = None,
) -> Path:
    """Write the standard library importcfg used by compile and link."""
    importcfg = binary.directory / IMPORTCFG_NAME
    out = run_tool(toolchain.import_config_args(), env=toolchain.env(), timings=timings, phase="importcfg")
    importcfg.write_text(out)
    return importcfg


def compile_and_link(
    script: ScriptRef,
    binary: BinaryRef,
    toolchain: Toolchain,
    timings: Optional[dict[str, float]] = None,
) -> str:
    """Compile the script to an object file, then link it into the binary."""
    env = toolchain.env()
    obj = binary.directory / OBJECT_NAME

    importcfg = write_import_config(binary, toolchain, timings)
    out = run_tool(
        toolchain.compile_args(script.path, obj, importcfg), env=env, timings=timings, phase="compile"
    )
    out += run_tool(
        toolchain.link_args(obj, binary.path, importcfg), env=env, timings=timings, phase="link"
    )

    try:
        obj.unlink()
    except OSError as e:
        log.warning(f"Could not remove object file {obj}: {e}")
    return out


def _stamp_time(script: ScriptRef, mtime_ns: int, modified: bool) -> int:
    """Modification time to give the new binary.

    Normally the script's pre-build time, so the next run is a cache hit. If
    the script was saved during the build, the binary must be older than
    that save so the next run rebuilds.
    """
    if not modified:
        return mtime_ns
    try:
        current = script.path.stat().st_mtime_ns
    except OSError:
        return mtime_ns
    return min(mtime_ns, current - 1)


def build_binary(
    script: ScriptRef,
    binary: BinaryRef,
    config: CacheConfig,
    toolchain: Optional[Toolchain] = None,
) -> BuildOutcome:
    """Compile the script into its cached binary.

    The interpreter line is commented out for the duration of the toolchain
    run and restored on every exit path, including ToolchainError.
    """
    toolchain = toolchain or Toolchain.from_config(config)
    if toolchain.tag != toolchain_tag(config):
        raise ValueError(f"toolchain targets {toolchain.tag}, cache is keyed on {toolchain_tag(config)}")

    try:
        mtime_ns = script.path.stat().st_mtime_ns
    except OSError as e:
        raise SetupError(f"Could not stat {script.path}: {e}") from e
    timings: dict[str, float] = {}

    with HashbangGuard(script.path) as guard:
        if config.whole_directory_build:
            log.info(f"Building directory {script.directory}")
            output = build_directory(script, binary, toolchain, timings)
        else:
            log.info(f"Compiling {script.name}")
            output = compile_and_link(script, binary, toolchain, timings)

    stamp_binary(binary, _stamp_time(script, mtime_ns, guard.modified_during_build))
    log.success(f"Built {binary.path} ({timing_summary(timings)})")
    return BuildOutcome(built=True, binary=binary, output=output, timings=timings)

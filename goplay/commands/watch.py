"""
Hot reload for goplay.

Watches the script (or its directory tree), and when a watched file changes
kills the running program, rebuilds it and starts it again.
"""

from __future__ import annotations

import os
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from goplay.core.utils import log
from goplay.core.process import RunHandle, exit_status, start
from goplay.build.config import CacheConfig, ScriptRef
from goplay.errors import GoplayError, SetupError, ToolchainError


# =============================================================================
# Constants
# =============================================================================

# Editors often write a file in several steps; wait this long after the
# first event before rebuilding.
DEBOUNCE_SECONDS = 0.2


# =============================================================================
# States and Events
# =============================================================================


class SupervisorState(Enum):
    """Lifecycle of a hot-reload session."""
    IDLE = auto()             # No program running (before start, or after a failed rebuild)
    RUNNING = auto()          # Program running, waiting for changes or exit
    RESTART_PENDING = auto()  # Change accepted, program about to be killed
    REBUILDING = auto()       # Toolchain running
    EXITED = auto()           # Program exited on its own; session over


@dataclass(frozen=True)
class FileChanged:
    path: Path


@dataclass(frozen=True)
class ProcessExited:
    handle: RunHandle
    returncode: int


@dataclass(frozen=True)
class WatchError:
    message: str


SupervisorEvent = Union[FileChanged, ProcessExited, WatchError]

Signature = Optional[tuple[int, int]]


# =============================================================================
# Change Filtering
# =============================================================================


class ChangeFilter:
    """Decides which changed paths should trigger a reload."""

    def __init__(self, script: ScriptRef, config: CacheConfig):
        self.script_path = script.path
        self.root = script.directory
        self.tree = config.watches_tree
        self.extensions = {ext.lower() for ext in config.watched_extensions}

    def matches(self, path: Path) -> bool:
        if path == self.script_path:
            return True
        if not self.tree:
            return False

        try:
            relative = path.relative_to(self.root)
        except ValueError:
            return False

        # Hidden directories, including the default .goplay cache
        if any(part.startswith(".") for part in relative.parts[:-1]):
            return False

        return path.suffix.lower() in self.extensions


def watch_root(script: ScriptRef, config: CacheConfig) -> tuple[Path, bool]:
    """Return (directory to watch, recursive)."""
    return script.directory, config.watches_tree


# =============================================================================
# File System Event Handler
# =============================================================================


class ReloadEventHandler(FileSystemEventHandler):
    """Forwards matching file system events to the supervisor's queue."""

    def __init__(self, change_filter: ChangeFilter, events: "queue.Queue[SupervisorEvent]"):
        super().__init__()
        self.change_filter = change_filter
        self.events = events

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event.src_path)
        self._handle(event.dest_path)

    def _handle(self, raw_path: Union[str, bytes]) -> None:
        # Runs on the observer thread; never let a fault kill it.
        try:
            path = Path(os.fsdecode(raw_path))
            if self.change_filter.matches(path):
                self.events.put(FileChanged(path))
        except Exception as e:
            self.events.put(WatchError(f"Could not handle event for {raw_path!r}: {e}"))


# =============================================================================
# Supervisor
# =============================================================================


class WatchSupervisor:
    """Runs a program and restarts it whenever its sources change.

    The observer thread and per-program waiter threads only post events to
    one queue; all state transitions happen on the calling thread.
    """

    def __init__(
        self,
        orchestrator,
        observer_factory: Callable[[], Observer] = Observer,
        debounce: float = DEBOUNCE_SECONDS,
    ):
        self.orchestrator = orchestrator
        self.script: ScriptRef = orchestrator.script
        self.config: CacheConfig = orchestrator.config
        self.args: tuple[str, ...] = tuple(orchestrator.args)
        self.observer_factory = observer_factory
        self.debounce = debounce

        self.events: "queue.Queue[SupervisorEvent]" = queue.Queue()
        self.state = SupervisorState.IDLE
        self.handle: Optional[RunHandle] = None
        self.restarts = 0
        self._signatures: dict[Path, Signature] = {}
        self._observer: Optional[Observer] = None

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def run(self) -> int:
        """Supervise until the program exits on its own.

        Returns the exit status to propagate. A failure of the first build
        is raised; failures of later rebuilds are only reported.
        """
        # Snapshot before building: a save made during the build is then
        # still seen as a change.
        self._signatures[self.script.path] = self._signature(self.script.path)
        outcome = self.orchestrator.ensure_binary(force=True)

        self._start_watching()
        try:
            self._start_program(outcome.binary.path)
            return self._loop()
        except KeyboardInterrupt:
            log.info("Interrupted, stopping")
            return 130
        finally:
            self._shutdown()

    # -------------------------------------------------------------------------
    # Event loop
    # -------------------------------------------------------------------------

    def _loop(self) -> int:
        while True:
            event = self.events.get()

            if isinstance(event, ProcessExited):
                if event.handle is not self.handle or event.handle.killed:
                    # Killed for a reload; expected.
                    continue
                self._set_state(SupervisorState.EXITED)
                log.info(f"Program exited with status {event.returncode} after {self.restarts} reload(s)")
                return exit_status(event.returncode)

            if isinstance(event, WatchError):
                log.warning(event.message)
                continue

            if self._is_new_change(event.path):
                log.info(f"Change detected: {event.path.name}")
                self._reload()

    def _reload(self) -> None:
        self._set_state(SupervisorState.RESTART_PENDING)
        time.sleep(self.debounce)

        if self.handle is not None:
            self.handle.kill()
            self.handle = None

        self._set_state(SupervisorState.REBUILDING)
        self._refresh_signatures()
        try:
            outcome = self.orchestrator.ensure_binary(force=True)
        except GoplayError as e:
            log.error(f"Rebuild failed: {e}")
            if isinstance(e, ToolchainError) and e.output:
                log.raw(e.output)
            log.warning("Waiting for the next change")
            self._set_state(SupervisorState.IDLE)
            return

        self.restarts += 1
        self._start_program(outcome.binary.path)

    # -------------------------------------------------------------------------
    # Program lifecycle
    # -------------------------------------------------------------------------

    def _start_program(self, binary: Path) -> None:
        handle = start(binary, self.args)
        self.handle = handle
        waiter = threading.Thread(
            target=self._wait_for,
            args=(handle,),
            name=f"goplay-wait-{handle.pid}",
            daemon=True,
        )
        waiter.start()
        self._set_state(SupervisorState.RUNNING)

    def _wait_for(self, handle: RunHandle) -> None:
        returncode = handle.wait()
        self.events.put(ProcessExited(handle, returncode))

    def _set_state(self, state: SupervisorState) -> None:
        log.debug(f"{self.state.name} -> {state.name}")
        self.state = state

    # -------------------------------------------------------------------------
    # Watching
    # -------------------------------------------------------------------------

    def _start_watching(self) -> None:
        root, recursive = watch_root(self.script, self.config)
        handler = ReloadEventHandler(ChangeFilter(self.script, self.config), self.events)

        observer = self.observer_factory()
        try:
            observer.schedule(handler, str(root), recursive=recursive)
            observer.start()
        except OSError as e:
            raise SetupError(f"Could not watch {root}: {e}") from e

        self._observer = observer
        mode = "recursively" if recursive else f"for {self.script.name}"
        log.info(f"Watching {root} {mode} (Ctrl+C to stop)")

    def _shutdown(self) -> None:
        if self.handle is not None:
            self.handle.kill()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    # -------------------------------------------------------------------------
    # Change detection
    # -------------------------------------------------------------------------

    def _signature(self, path: Path) -> Signature:
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            log.warning(f"Could not stat {path}: {e}")
            return None
        return st.st_mtime_ns, st.st_size

    def _is_new_change(self, path: Path) -> bool:
        """Whether the path differs from when it was last seen.

        Attribute-only events and goplay's own hashbang rewrite leave the
        signature unchanged, as do duplicate events for one edit.
        """
        signature = self._signature(path)
        if path in self._signatures and self._signatures[path] == signature:
            return False
        self._signatures[path] = signature
        return True

    def _refresh_signatures(self) -> None:
        for path in list(self._signatures):
            self._signatures[path] = self._signature(path)

"""
Shared pytest fixtures for goplay tests.

The end-to-end tests do not need a Go installation: a fake `go` command
(a Python script) stands in for the toolchain. Its "Go" sources are Python
programs behind the interpreter line, and the "binary" it links is a /bin/sh
wrapper that runs them. Like the real compiler it rejects a source whose
first line is still a `#!` line.

Test Tier Markers:
  @pytest.mark.evergreen - Tests that always run, never skip
  @pytest.mark.slow      - Tests that start watchers or several processes
"""

from __future__ import annotations

import os
import queue
import shlex
import subprocess
import sys
import threading
from pathlib import Path
from typing import Optional, TextIO

import pytest

import goplay
from goplay.build.config import CacheConfig, ScriptRef
from goplay.build.phases import Toolchain


# =============================================================================
# Fake Toolchain
# =============================================================================

FAKE_GO = r'''
import os
import sys
from pathlib import Path

LOG = Path(__file__).resolve().with_name("go-invocations.log")


def option(args, name):
    return args[args.index(name) + 1]


def program_body(source):
    lines = Path(source).read_text().splitlines(keepends=True)
    if lines and lines[0].startswith("#!"):
        sys.stderr.write(f"{source}:1:1: invalid character U+0023 '#'\n")
        sys.exit(1)
    if lines and lines[0].startswith("//"):
        lines = lines[1:]
    body = "".join(lines)
    if "COMPILE_ERROR" in body:
        sys.stderr.write(f"{source}:2:1: undefined: COMPILE_ERROR\n")
        sys.exit(1)
    return body


def edit_during_build(source):
    # Simulates a save while the compiler runs: FAKE_GO_EDIT is the new
    # content, FAKE_GO_EDIT_MODE=rename saves it the way many editors do.
    content = os.environ.get("FAKE_GO_EDIT")
    if content is None:
        return
    if os.environ.get("FAKE_GO_EDIT_MODE") == "rename":
        temp = Path(source).with_name(".save.tmp")
        temp.write_text(content)
        os.replace(temp, source)
    else:
        Path(source).write_text(content)


def link(body, binary):
    binary = Path(binary)
    program = binary.with_name(binary.name + ".py")
    program.write_text(body)
    binary.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{program}" "$@"\n')
    binary.chmod(0o755)


def main(args):
    with open(LOG, "a") as fh:
        fh.write(" ".join(args) + "\n")

    if args[0] == "list":
        return 0
    if args[:2] == ["tool", "compile"]:
        body = program_body(args[-1])
        edit_during_build(args[-1])
        Path(option(args, "-o")).write_text(body)
        return 0
    if args[:2] == ["tool", "link"]:
        link(Path(args[-1]).read_text(), option(args, "-o"))
        return 0
    if args[0] == "build":
        body = "".join(program_body(s) for s in sorted(Path.cwd().glob("*.go")))
        link(body, option(args, "-o"))
        return 0
    sys.stderr.write(f"go: unknown command {args}\n")
    return 2


sys.exit(main(sys.argv[1:]))
'''


class FakeGo:
    """Handle on the fake `go` command and its invocation log."""

    def __init__(self, directory: Path):
        self.path = directory / "fake_go.py"
        self.path.write_text(FAKE_GO)
        self.log_path = directory / "go-invocations.log"

    @property
    def command(self) -> tuple[str, ...]:
        return (sys.executable, str(self.path))

    def config_line(self) -> str:
        return "go-command " + " ".join(shlex.quote(word) for word in self.command)

    def invocations(self) -> list[str]:
        if not self.log_path.exists():
            return []
        return self.log_path.read_text().splitlines()

    def count(self, subcommand: str) -> int:
        """Number of invocations starting with e.g. "tool compile" or "build"."""
        return sum(1 for line in self.invocations() if line.startswith(subcommand))


# =============================================================================
# Projects
# =============================================================================

OUTPUT_SCRIPT = """\
#!/usr/bin/env goplay
print("The night is all magic")
"""

INPUT_SCRIPT = """\
#!/usr/bin/env goplay
import sys
print("(Write and press Enter to finish)")
line = sys.stdin.readline()
sys.stdout.write(line)
"""

PARAMETERS_SCRIPT = """\
#!/usr/bin/env goplay
import sys
args = sys.argv[1:]
print("Parameters: " + str(len(args)))
for arg in args:
    print(arg)
"""

EXIT_SCRIPT = """\
#!/usr/bin/env goplay
import sys
sys.exit(int(sys.argv[1]))
"""

RELOAD_SCRIPT = """\
#!/usr/bin/env goplay
import time
stop = False
print("Start!", flush=True)
while not stop:
    time.sleep(0.05)
print("Stop!", flush=True)
"""


class GoProject:
    """A temporary script directory wired to the fake toolchain."""

    def __init__(self, root: Path, fake_go: FakeGo, home: Path):
        self.root = root
        self.fake_go = fake_go
        self.home = home
        self.root.mkdir(parents=True, exist_ok=True)
        self.write_rc()

    def write_rc(self, *lines: str) -> Path:
        rc = self.root / ".goplayrc"
        rc.write_text("\n".join([self.fake_go.config_line(), *lines]) + "\n")
        return rc

    def write_script(self, name: str, body: str, executable: bool = True) -> Path:
        path = self.root / name
        path.write_text(body)
        if executable:
            path.chmod(0o755)
        return path

    def env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["HOME"] = str(self.home)
        env["PYTHONPATH"] = os.pathsep.join(
            p for p in (str(Path(goplay.__file__).resolve().parent.parent), env.get("PYTHONPATH")) if p
        )
        env.pop("GOOS", None)
        env.pop("GOARCH", None)
        return env

    def command(self, *args: str) -> list[str]:
        return [sys.executable, "-m", "goplay", *args]

    def run(self, *args: str, input: Optional[str] = None, timeout: float = 60) -> subprocess.CompletedProcess:
        """Run goplay to completion with captured output."""
        return subprocess.run(
            self.command(*args),
            cwd=self.root,
            env=self.env(),
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
        )

    def popen(self, *args: str) -> subprocess.Popen:
        return subprocess.Popen(
            self.command(*args),
            cwd=self.root,
            env=self.env(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )


def read_line(stream: TextIO, timeout: float) -> Optional[str]:
    """readline() with a timeout; returns None if nothing arrived in time."""
    lines: "queue.Queue[str]" = queue.Queue()
    threading.Thread(target=lambda: lines.put(stream.readline()), daemon=True).start()
    try:
        return lines.get(timeout=timeout)
    except queue.Empty:
        return None


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test tiers."""
    config.addinivalue_line(
        "markers",
        "evergreen: tests that always run, never skip"
    )
    config.addinivalue_line(
        "markers",
        "slow: tests that start file watchers or several processes"
    )


@pytest.fixture
def fake_go(tmp_path: Path) -> FakeGo:
    """The fake `go` command, logging to go-invocations.log beside it."""
    tools = tmp_path / "tools"
    tools.mkdir()
    return FakeGo(tools)


@pytest.fixture
def toolchain(fake_go: FakeGo) -> Toolchain:
    return Toolchain(command=fake_go.command, goos="linux", goarch="amd64")


@pytest.fixture
def config(fake_go: FakeGo) -> CacheConfig:
    return CacheConfig(go_command=fake_go.command, goos="linux", goarch="amd64")


@pytest.fixture
def project(tmp_path: Path, fake_go: FakeGo) -> GoProject:
    """A script directory with a .goplayrc pointing at the fake toolchain."""
    home = tmp_path / "home"
    home.mkdir()
    return GoProject(tmp_path / "project", fake_go, home)


@pytest.fixture
def make_script(tmp_path: Path):
    """Factory writing a script into tmp_path and returning its ScriptRef."""

    def _make(name: str = "hello.go", body: str = OUTPUT_SCRIPT) -> ScriptRef:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body)
        return ScriptRef.from_path(path)

    return _make

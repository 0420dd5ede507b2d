"""
Run orchestrator for goplay.

Locate the cached binary -> rebuild if stale -> run it, or hand over to the
watch supervisor in hot-reload mode.
"""

from __future__ import annotations

from typing import Optional, Sequence

from goplay.core.utils import log
from goplay.core.process import run_and_wait
from goplay.build.caching import locate, needs_build
from goplay.build.config import CacheConfig, ScriptRef
from goplay.build.phases import BuildOutcome, Toolchain, build_binary


class RunOrchestrator:
    """Brings a script's binary up to date and runs it."""

    def __init__(
        self,
        script: ScriptRef,
        config: CacheConfig,
        args: Sequence[str] = (),
        toolchain: Optional[Toolchain] = None,
    ):
        self.script = script
        self.config = config
        self.args = tuple(args)
        self.toolchain = toolchain or Toolchain.from_config(config)
        self.builds = 0

    def ensure_binary(self, force: Optional[bool] = None) -> BuildOutcome:
        """Rebuild the binary if needed and return where it is.

        Raises:
            SetupError: If the cache directory or the script is inaccessible.
            ToolchainError: If compiling or linking fails.
        """
        force = self.config.force_compile if force is None else force
        binary = locate(self.script, self.config)

        if not needs_build(self.script, binary, force):
            return BuildOutcome(built=False, binary=binary)

        outcome = build_binary(self.script, binary, self.config, self.toolchain)
        self.builds += 1
        return outcome

    def run(self) -> int:
        """Run the script once, or supervise it in hot-reload mode.

        Returns the exit status goplay should exit with.
        """
        log.header(f"goplay {self.script.path}")
        if self.config.hot_reload:
            from goplay.commands.watch import WatchSupervisor

            return WatchSupervisor(self).run()

        outcome = self.ensure_binary()
        return run_and_wait(outcome.binary.path, self.args)

"""
Main CLI for goplay.

Runs a Go source file as if it were a script:

    goplay [-f] [-b] [-r] [-R] file.go [args...]

To run it directly, insert "#!/usr/bin/env goplay" in the first line of the
Go file and set its executable bit.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from goplay.core.utils import ERROR, log
from goplay.build.config import ScriptRef, load_config
from goplay.build.orchestrator import RunOrchestrator
from goplay.errors import GoplayError, ToolchainError, UsageError


# =============================================================================
# Version
# =============================================================================

__version__ = "0.3.0"


# =============================================================================
# Argument Parsing
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="goplay",
        description="Run a Go source file like a script, caching the compiled binary.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
To run a file directly, insert "#!/usr/bin/env goplay" in its first line
and set its executable bit (chmod +x file.go).

Configuration is read from /etc/goplayrc, ~/.goplayrc and .goplayrc in the
script's directory, one "key value" pair per line.

Examples:
  goplay hello.go                # Compile if needed, then run
  goplay -f hello.go one two     # Force compilation, pass arguments
  goplay -r server.go            # Rebuild and restart on changes
  goplay -R -b cmd/main.go       # Build the directory, watch it recursively
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-f", "--force",
        action="store_true",
        help="Force compilation even if the cached binary is up to date",
    )
    parser.add_argument(
        "-b", "--build-dir",
        action="store_true",
        help="Build the script's whole directory instead of the single file",
    )
    parser.add_argument(
        "-r", "--reload",
        action="store_true",
        help="Hot reload: rebuild and restart when the script changes (implies -f)",
    )
    parser.add_argument(
        "-R", "--reload-recursive",
        action="store_true",
        help="Hot reload watching the script's directory tree (implies -r)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Report build and reload activity on stderr",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "script",
        help="Go source file to run",
    )
    return parser


def split_argv(argv: Sequence[str]) -> tuple[list[str], Optional[str], list[str]]:
    """Split argv into (goplay flags, script, program arguments).

    The first argument not starting with "-" (or the one after "--") is the
    script; everything after it belongs to the program, even if it looks
    like a goplay flag.
    """
    argv = list(argv)
    for index, arg in enumerate(argv):
        if arg == "--":
            if index + 1 < len(argv):
                return argv[:index], argv[index + 1], argv[index + 2:]
            return argv[:index], None, []
        if not arg.startswith("-"):
            return argv[:index], arg, argv[index + 1:]
    return argv, None, []


def parse_args(argv: Sequence[str]) -> tuple[argparse.Namespace, list[str]]:
    """Parse goplay's arguments.

    Raises:
        UsageError: If no script is given.
    """
    flags, script, program_args = split_argv(argv)
    parser = create_parser()
    if script is None:
        if {"-h", "--help", "--version"} & set(flags):
            parser.parse_args(flags)  # prints and exits
        parser.print_usage(sys.stderr)
        raise UsageError("no script given")
    return parser.parse_args([*flags, "--", script]), program_args


# =============================================================================
# Main
# =============================================================================


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point. Returns the exit status of the program run."""
    try:
        args, program_args = parse_args(sys.argv[1:] if argv is None else argv)
    except UsageError as e:
        log.error(str(e))
        return e.exit_code

    if args.no_color:
        log.set_color(False)
    log.set_verbose(args.verbose)

    flags = {
        "force_compile": args.force,
        "whole_directory_build": args.build_dir,
        "hot_reload": args.reload,
        "hot_reload_recursive": args.reload_recursive,
    }

    try:
        script = ScriptRef.from_path(args.script)
        config = load_config(script, flags)
        return RunOrchestrator(script, config, program_args).run()
    except ToolchainError as e:
        log.error(str(e))
        log.raw(e.output)
        return e.exit_code
    except GoplayError as e:
        log.error(str(e))
        return e.exit_code or ERROR
    except KeyboardInterrupt:
        log.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())

"""
goplay - run Go source files like scripts.

Compiles a Go file on first use, caches the binary, and runs it with the
caller's stdio, arguments and exit status. Optionally rebuilds and restarts
the program when its sources change.

Usage:
    goplay [-f] [-b] [-r] [-R] file.go [args...]

or, with "#!/usr/bin/env goplay" as the file's first line:
    ./file.go [args...]
"""

from .cli import __version__, main

__all__ = ["__version__", "main"]

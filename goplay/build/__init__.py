"""
goplay.build - Build caching and orchestration.

Locates cached binaries, decides when to recompile, and drives the Go
toolchain with the interpreter line commented out.
"""

from goplay.build.config import (
    SYSTEM_CONFIG,
    USER_CONFIG_NAME,
    PROJECT_CONFIG_NAME,
    ScriptRef,
    CacheConfig,
    config_files,
    load_config,
    parse_config_text,
    user_config,
)
from goplay.build.caching import (
    BinaryRef,
    binary_ref,
    locate,
    needs_build,
    toolchain_tag,
)
from goplay.build.hashbang import HashbangGuard, has_hashbang
from goplay.build.phases import (
    BuildOutcome,
    Toolchain,
    build_binary,
    build_directory,
    compile_and_link,
    working_directory,
)
from goplay.build.orchestrator import RunOrchestrator

__all__ = [
    # Constants
    "SYSTEM_CONFIG",
    "USER_CONFIG_NAME",
    "PROJECT_CONFIG_NAME",
    # Data classes
    "ScriptRef",
    "CacheConfig",
    "BinaryRef",
    "BuildOutcome",
    "Toolchain",
    # Functions
    "config_files",
    "load_config",
    "user_config",
    "parse_config_text",
    "binary_ref",
    "locate",
    "needs_build",
    "toolchain_tag",
    "has_hashbang",
    "build_binary",
    "build_directory",
    "compile_and_link",
    "working_directory",
    # Guards
    "HashbangGuard",
    # Orchestrator
    "RunOrchestrator",
]

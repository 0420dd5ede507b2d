"""Formatting of toolchain phase timings for verbose build reports.

`run_tool` records each phase's wall-clock seconds into a dict; this module
turns that dict into the summary printed after a build.
"""

from typing import Mapping


def format_duration(seconds: float) -> str:
    """Format seconds for build reports: "850ms", "1.2s", "2m 3.0s"."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds % 60:.1f}s"


def timing_summary(timings: Mapping[str, float]) -> str:
    """Format phase timings as "compile: 412ms | link: 1.1s"."""
    if not timings:
        return "(no phases run)"
    return " | ".join(f"{phase}: {format_duration(t)}" for phase, t in timings.items())

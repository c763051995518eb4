"""Text rendering of timing summaries and the size line.

The timing layout follows hyperfine's so both backends read the same in
a CI log::

    Benchmark 1: ./target/release/ezno build example.js
      Time (mean ± σ):      12.3 ms ±   0.4 ms    [User: 9.1 ms, System: 3.0 ms]
      Range (min … max):    11.8 ms …  13.5 ms    10 runs
"""

from __future__ import annotations

from binbench.bench.results import TimingSummary

SIZE_LINE_FORMAT = "Binary is {size} bytes"


def format_size_line(size: int) -> str:
    """Return exactly ``Binary is <size> bytes``."""
    return SIZE_LINE_FORMAT.format(size=size)


def _unit_for(seconds: float) -> tuple[str, float]:
    if seconds < 1e-3:
        return "µs", 1e6
    if seconds < 1.0:
        return "ms", 1e3
    return "s", 1.0


def format_duration(seconds: float, *, unit: tuple[str, float] | None = None) -> str:
    """Format *seconds* with one decimal in the chosen (or fitting) unit."""
    name, scale = unit or _unit_for(seconds)
    return f"{seconds * scale:.1f} {name}"


def format_timing_summary(summary: TimingSummary, *, index: int = 1) -> str:
    """Render *summary* as a hyperfine-style block."""
    unit = _unit_for(summary.mean)
    mean = format_duration(summary.mean, unit=unit)
    stddev = format_duration(summary.stddev, unit=unit)
    lo = format_duration(summary.min, unit=unit)
    hi = format_duration(summary.max, unit=unit)
    user = format_duration(summary.user, unit=unit)
    system = format_duration(summary.system, unit=unit)

    lines = [
        f"Benchmark {index}: {summary.command}",
        f"  Time (mean ± σ):     {mean:>9} ± {stddev:>8}    [User: {user}, System: {system}]",
        f"  Range (min … max):   {lo:>9} … {hi:>8}    {summary.runs} runs",
    ]
    if summary.has_outliers:
        lines.append("")
        lines.append(
            "  Warning: Statistical outliers were detected. Consider re-running this "
            "benchmark on a quiet system without any interferences from other programs."
        )
    return "\n".join(lines)

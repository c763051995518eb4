"""Timing through the external hyperfine utility.

hyperfine runs the command repeatedly and prints its own summary, which is
surfaced verbatim.  Its ``--export-json`` output is parsed into a
:class:`TimingSummary` for the JSON report.  hyperfine aborts with a
non-zero status when any repetition of the command fails.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from binbench.bench.results import TimingSummary
from binbench.logging import get_logger, log_output
from binbench.stages import StageError, combined_output, run_command

log = get_logger("bench.hyperfine")


def hyperfine_command(
    benchmark_command: str,
    *,
    export_json: Path | None = None,
    warmup: int | None = None,
    runs: int | None = None,
    executable: str = "hyperfine",
) -> list[str]:
    """Build the hyperfine argument list for one benchmarked command."""
    args = [executable]
    if warmup is not None:
        args += ["--warmup", str(warmup)]
    if runs is not None:
        args += ["--runs", str(runs)]
    if export_json is not None:
        args += ["--export-json", str(export_json)]
    args.append(benchmark_command)
    return args


def parse_export(data: dict[str, Any]) -> TimingSummary:
    """Parse a hyperfine ``--export-json`` document (first result).

    Raises:
        ValueError: If the document has no results.
    """
    results = data.get("results")
    if not results:
        raise ValueError("hyperfine export contains no results")
    r = results[0]
    return TimingSummary(
        command=r.get("command", ""),
        mean=float(r["mean"]),
        stddev=float(r.get("stddev") or 0.0),
        median=float(r.get("median", r["mean"])),
        min=float(r["min"]),
        max=float(r["max"]),
        user=float(r.get("user", 0.0)),
        system=float(r.get("system", 0.0)),
        times=[float(t) for t in r.get("times", [])],
        tool="hyperfine",
    )


def run_hyperfine(
    benchmark_command: str,
    *,
    cwd: Path,
    env: dict[str, str],
    warmup: int | None = None,
    runs: int | None = None,
) -> tuple[TimingSummary | None, str]:
    """Run hyperfine once over *benchmark_command*.

    Returns:
        ``(summary, output)`` where *output* is hyperfine's own report.
        *summary* is ``None`` if the export could not be parsed.

    Raises:
        StageError: If hyperfine is missing or exits non-zero.
    """
    fd, export_name = tempfile.mkstemp(prefix="binbench-hyperfine-", suffix=".json")
    os.close(fd)
    export_path = Path(export_name)
    try:
        args = hyperfine_command(
            benchmark_command, export_json=export_path, warmup=warmup, runs=runs
        )
        try:
            proc = run_command(args, cwd=cwd, env=env)
        except FileNotFoundError as exc:
            raise StageError(
                "measure", "measure", "hyperfine not found on PATH; was the install stage skipped?"
            ) from exc

        if proc.returncode != 0:
            raise StageError(
                "measure",
                "measure",
                f"hyperfine failed (exit {proc.returncode})",
                exit_code=proc.returncode,
                output=combined_output(proc),
            )
        log_output(log, proc.stderr)

        summary: TimingSummary | None = None
        try:
            summary = parse_export(json.loads(export_path.read_text()))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            log.warning("Could not parse hyperfine export: %s", exc)
        return summary, proc.stdout
    finally:
        export_path.unlink(missing_ok=True)

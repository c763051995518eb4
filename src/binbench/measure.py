"""Measurement stage: fixture retrieval, timing, then binary size.

The three steps run in that order and the first failure stops the stage.
The size is read with a filesystem stat at measurement time and reported
as ``Binary is <N> bytes``.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from binbench.bench.builtin import run_builtin
from binbench.bench.display import format_size_line
from binbench.bench.hyperfine import run_hyperfine
from binbench.bench.results import TimingSummary
from binbench.config import BenchmarkConfig, FixtureConfig
from binbench.fixture import fetch_fixture
from binbench.logging import get_logger
from binbench.stages import StageError

log = get_logger("measure")


@dataclass
class MeasurementResult:
    fixture: Path
    timing: TimingSummary | None
    timing_output: str
    binary_size: int

    @property
    def size_line(self) -> str:
        return format_size_line(self.binary_size)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fixture": str(self.fixture),
            "timing": self.timing.to_dict() if self.timing else None,
            "binary_size": self.binary_size,
        }


def _display_path(path: Path, workdir: Path) -> str:
    """Render *path* relative to *workdir* when possible, ``./``-prefixed."""
    try:
        rel = path.resolve().relative_to(workdir.resolve())
    except ValueError:
        return str(path)
    return f"./{rel.as_posix()}"


def build_benchmark_command(template: str, binary: Path, fixture: Path, workdir: Path) -> str:
    """Fill the benchmark command template.

    With the default template this yields ``./target/release/ezno build
    example.js``.
    """
    binary_arg = _display_path(binary, workdir)
    fixture_arg = _display_path(fixture, workdir)
    if fixture_arg.startswith("./") and "/" not in fixture_arg[2:]:
        fixture_arg = fixture_arg[2:]
    return template.format(binary=shlex.quote(binary_arg), fixture=shlex.quote(fixture_arg))


def measure_size(path: Path) -> int:
    """Byte length of *path* via ``os.stat``.

    Raises:
        StageError: If the file cannot be stat'ed.
    """
    try:
        return os.stat(path).st_size
    except OSError as exc:
        raise StageError("measure", "measure", f"Cannot stat {path}: {exc}") from exc


def run_timing(
    benchmark: BenchmarkConfig,
    command: str,
    *,
    cwd: Path,
    env: dict[str, str],
) -> tuple[TimingSummary | None, str]:
    """Time *command* with the configured backend."""
    log.info("Timing with %s: %s", benchmark.tool, command)
    if benchmark.tool == "builtin":
        return run_builtin(
            command,
            cwd=cwd,
            env=env,
            warmup=benchmark.warmup,
            runs=benchmark.runs,
            timeout=benchmark.timeout,
        )
    if benchmark.tool == "hyperfine":
        return run_hyperfine(
            command, cwd=cwd, env=env, warmup=benchmark.warmup, runs=benchmark.runs
        )
    raise ValueError(f"Unknown benchmark tool: {benchmark.tool}")


def run_measurement(
    artifact: Path,
    *,
    fixture: FixtureConfig,
    benchmark: BenchmarkConfig,
    workdir: Path,
    env: dict[str, str],
) -> MeasurementResult:
    """Fetch the fixture, time the artifact against it, then measure its size."""
    fixture_path = fetch_fixture(
        fixture.url, workdir, timeout=fixture.timeout, sha256=fixture.sha256
    )

    command = build_benchmark_command(benchmark.command, artifact, fixture_path, workdir)
    timing, output = run_timing(benchmark, command, cwd=workdir, env=env)

    size = measure_size(artifact)
    log.debug("Artifact %s is %d bytes", artifact, size)

    return MeasurementResult(
        fixture=fixture_path,
        timing=timing,
        timing_output=output,
        binary_size=size,
    )

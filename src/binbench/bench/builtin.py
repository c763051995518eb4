"""Builtin repeated-execution timing, for hosts without hyperfine."""

from __future__ import annotations

from pathlib import Path

from binbench.bench.display import format_timing_summary
from binbench.bench.results import TimingSummary
from binbench.bench.timing import run_timed
from binbench.logging import get_logger
from binbench.stages import StageError

log = get_logger("bench.builtin")

DEFAULT_WARMUP = 0
DEFAULT_RUNS = 10


def run_builtin(
    benchmark_command: str,
    *,
    cwd: Path,
    env: dict[str, str],
    warmup: int | None = None,
    runs: int | None = None,
    timeout: float | None = None,
) -> tuple[TimingSummary, str]:
    """Run *benchmark_command* ``warmup + runs`` times and summarize.

    Every repetition, warm-up included, must exit zero.

    Returns:
        ``(summary, output)`` where *output* is the formatted summary.

    Raises:
        StageError: On the first failing or timed-out repetition.
    """
    warmup = DEFAULT_WARMUP if warmup is None else warmup
    runs = DEFAULT_RUNS if runs is None else runs

    wall: list[float] = []
    user: list[float] = []
    system: list[float] = []

    for index in range(warmup + runs):
        is_warmup = index < warmup
        try:
            result = run_timed(benchmark_command, cwd=cwd, env=env, timeout=timeout)
        except FileNotFoundError as exc:
            raise StageError(
                "measure", "measure", f"Benchmarked command not found: {exc.filename}"
            ) from exc

        if result.timed_out:
            raise StageError(
                "measure",
                "measure",
                f"Command timed out after {timeout}s on repetition {index + 1}",
                output=result.stderr,
            )
        if result.exit_code != 0:
            raise StageError(
                "measure",
                "measure",
                f"Command terminated with non-zero exit code {result.exit_code} "
                f"on repetition {index + 1}",
                exit_code=result.exit_code,
                output=result.stdout + result.stderr,
            )

        log.debug(
            "%s %d: %.6fs",
            "warmup" if is_warmup else "run",
            index + 1,
            result.wall_time_s,
        )
        if not is_warmup:
            wall.append(result.wall_time_s)
            user.append(result.user_time_s)
            system.append(result.sys_time_s)

    summary = TimingSummary.from_samples(
        benchmark_command, wall, user_times=user, sys_times=system, tool="builtin"
    )
    return summary, format_timing_summary(summary)

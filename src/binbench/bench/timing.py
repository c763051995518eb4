"""Timing capture for single benchmark repetitions.

Measures wall-clock time and user/system CPU time of one sub-process
execution.  CPU times come from the ``RUSAGE_CHILDREN`` delta around the
call.
"""

from __future__ import annotations

import os
import resource
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from binbench.stages import split_command


@dataclass
class TimedResult:
    """Result of a timed subprocess execution."""

    wall_time_s: float
    user_time_s: float
    sys_time_s: float
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def cpu_time_s(self) -> float:
        """Total CPU time (user + system)."""
        return self.user_time_s + self.sys_time_s


def run_timed(
    command: str | list[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> TimedResult:
    """Execute a command once and capture its timing.

    The command is split with shell rules but run without a shell, so the
    measured time is the program's own.  ``timeout`` of ``None`` waits
    indefinitely; on expiry the whole process group is killed and
    ``exit_code`` is -1.

    Raises:
        FileNotFoundError: If the executable does not exist.
    """
    pre_rusage = resource.getrusage(resource.RUSAGE_CHILDREN)
    wall_start = time.monotonic()

    timed_out = False
    proc = subprocess.Popen(
        split_command(command),
        cwd=str(cwd) if cwd else None,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        start_new_session=True,
    )
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
        exit_code = proc.returncode
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_group(proc.pid)
        try:
            stdout, stderr = proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            stdout, stderr = proc.communicate()
        exit_code = -1

    wall_time = time.monotonic() - wall_start
    post_rusage = resource.getrusage(resource.RUSAGE_CHILDREN)

    return TimedResult(
        wall_time_s=round(wall_time, 6),
        user_time_s=round(max(post_rusage.ru_utime - pre_rusage.ru_utime, 0.0), 6),
        sys_time_s=round(max(post_rusage.ru_stime - pre_rusage.ru_stime, 0.0), 6),
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
    )


def _kill_process_group(pid: int) -> None:
    """Attempt to kill the entire process group on timeout."""
    try:
        os.killpg(os.getpgid(pid), signal.SIGKILL)
    except OSError:
        pass

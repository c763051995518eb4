"""Stage results, the stage failure type, and the shared sub-process helper.

Every stage of the pipeline reports through a :class:`StageResult`.  Stage
operations signal failure by raising :class:`StageError`; the pipeline
runner turns that into a failed result and stops.  The error *kind* follows
the pipeline's failure taxonomy:

- ``setup``    checkout, cache restore/save, tool installation
- ``build``    compilation
- ``fixture``  fixture retrieval
- ``measure``  timing execution

All kinds abort the run identically; the kind is only reported.
"""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from binbench.logging import get_logger

log = get_logger("stages")

ERROR_KINDS = ("setup", "build", "fixture", "measure")


class StageError(Exception):
    """A non-recoverable failure of a pipeline stage."""

    def __init__(
        self,
        stage: str,
        kind: str,
        message: str,
        *,
        exit_code: int = 1,
        output: str = "",
    ) -> None:
        if kind not in ERROR_KINDS:
            raise ValueError(f"Unknown stage error kind: {kind!r}")
        super().__init__(message)
        self.stage = stage
        self.kind = kind
        self.message = message
        self.exit_code = exit_code
        self.output = output

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


@dataclass
class StageResult:
    """Outcome of a single pipeline stage."""

    name: str
    ok: bool
    exit_code: int = 0
    duration_s: float = 0.0
    output: str = ""
    error_kind: str | None = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "ok": self.ok,
            "exit_code": self.exit_code,
            "duration_s": round(self.duration_s, 3),
            "error_kind": self.error_kind,
            "detail": self.detail,
        }


def split_command(command: str | list[str]) -> list[str]:
    """Turn a configured command into an argument list."""
    if isinstance(command, list):
        return [str(c) for c in command]
    return shlex.split(command)


def merge_env(*layers: dict[str, str] | None) -> dict[str, str]:
    """Layer environment dicts over ``os.environ``; later layers win."""
    env = dict(os.environ)
    for layer in layers:
        if layer:
            env.update({k: str(v) for k, v in layer.items()})
    return env


def run_command(
    command: str | list[str],
    *,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a command to completion, capturing its output.

    ``timeout`` of ``None`` waits indefinitely.

    Raises:
        FileNotFoundError: If the executable does not exist.
        subprocess.TimeoutExpired: If *timeout* elapses.
    """
    args = split_command(command)
    log.debug("Running: %s%s", shlex.join(args), f" (in {cwd})" if cwd else "")
    return subprocess.run(
        args,
        capture_output=True,
        text=True,
        cwd=str(cwd) if cwd else None,
        env=env,
        timeout=timeout,
    )


def combined_output(proc: subprocess.CompletedProcess[str]) -> str:
    """Return stdout followed by stderr, skipping empty streams."""
    parts = [p for p in (proc.stdout, proc.stderr) if p]
    return "".join(p if p.endswith("\n") else p + "\n" for p in parts)

"""Release build of the target tool.

Runs the project's build command with the build-scoped environment layered
over the global one.  The artifact exists afterwards if and only if the
command exited zero: a stale artifact (e.g. from a restored ``target/``
cache) is removed before building.
"""

from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from binbench.config import BuildConfig
from binbench.logging import get_logger, log_output
from binbench.stages import StageError, combined_output, run_command

log = get_logger("build")


@dataclass
class BuildResult:
    artifact: Path
    duration_s: float
    output: str


def _remove_stale(artifact: Path) -> None:
    if artifact.exists() or artifact.is_symlink():
        log.debug("Removing stale artifact %s", artifact)
        try:
            artifact.unlink()
        except OSError as exc:
            raise StageError(
                "build", "build", f"Cannot remove stale artifact {artifact}: {exc}"
            ) from exc


def build_artifact(
    build: BuildConfig,
    artifact: Path,
    *,
    workdir: Path,
    env: dict[str, str],
) -> BuildResult:
    """Build the artifact and verify it.

    Args:
        build: Build settings (command, scoped env, timeout).
        artifact: Expected output path.
        workdir: Directory the command runs in.
        env: Global environment; ``build.env`` is layered on top.

    Raises:
        StageError: On a non-zero exit, a timeout, or a zero exit that left
            no executable artifact.
    """
    _remove_stale(artifact)

    run_env = {**env, **build.env}
    for key, value in build.env.items():
        log.debug("Build env: %s=%s", key, value)

    log.info("Building: %s", build.command)
    start = time.monotonic()
    try:
        proc = run_command(build.command, cwd=workdir, env=run_env, timeout=build.timeout)
    except FileNotFoundError as exc:
        raise StageError("build", "build", f"Build tool not found: {exc.filename}") from exc
    except subprocess.TimeoutExpired as exc:
        raise StageError("build", "build", f"Build timed out after {exc.timeout}s") from exc
    duration = time.monotonic() - start
    output = combined_output(proc)

    if proc.returncode != 0:
        raise StageError(
            "build",
            "build",
            f"Build failed (exit {proc.returncode})",
            exit_code=proc.returncode,
            output=output,
        )

    if not artifact.is_file():
        raise StageError(
            "build",
            "build",
            f"Build succeeded but produced no artifact at {artifact}",
            output=output,
        )
    if not os.access(artifact, os.X_OK):
        raise StageError(
            "build",
            "build",
            f"Build artifact is not executable: {artifact}",
            output=output,
        )

    log_output(log, output)
    log.info("Built %s in %.1fs", artifact, duration)
    return BuildResult(artifact=artifact, duration_s=duration, output=output)

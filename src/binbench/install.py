"""Installation of external tools (the benchmarking utility).

Each named package is installed as a prebuilt binary with the configured
installer command (``cargo binstall`` by default) into a directory that is
put on ``PATH`` for every later stage.  When the installer itself
is missing it is bootstrapped first.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from binbench.config import InstallConfig
from binbench.logging import get_logger
from binbench.stages import StageError, combined_output, run_command

log = get_logger("install")


@dataclass
class InstalledTool:
    """A tool available on the search path after the install stage."""

    package: str
    path: str
    already_present: bool = False


def bin_dir_path(install: InstallConfig) -> Path:
    return Path(install.bin_dir).expanduser()


def env_with_bin_dir(install: InstallConfig, env: dict[str, str]) -> dict[str, str]:
    """Return *env* with the tool install directory prepended to ``PATH``."""
    bin_dir = str(bin_dir_path(install))
    current = env.get("PATH", "")
    parts = current.split(os.pathsep) if current else []
    if bin_dir in parts:
        return dict(env)
    return {**env, "PATH": os.pathsep.join([bin_dir, *parts])}


def _run_installer(command: str, what: str, install: InstallConfig, env: dict[str, str]) -> str:
    try:
        proc = run_command(command, env=env, timeout=install.timeout)
    except FileNotFoundError as exc:
        raise StageError(
            "install", "setup", f"Installer not found for '{command}': {exc.filename}"
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise StageError(
            "install", "setup", f"Installing {what} timed out after {exc.timeout}s"
        ) from exc

    output = combined_output(proc)
    if proc.returncode != 0:
        raise StageError(
            "install",
            "setup",
            f"Installing {what} failed (exit {proc.returncode})",
            exit_code=proc.returncode,
            output=output,
        )
    return output


def ensure_installer(install: InstallConfig, env: dict[str, str]) -> None:
    """Make sure the executable behind ``install.command`` is on ``PATH``.

    Runs ``install.bootstrap`` once when it is missing.

    Raises:
        StageError: If the installer is missing and cannot be bootstrapped.
    """
    if not install.installer:
        return
    search_path = env.get("PATH")
    if shutil.which(install.installer, path=search_path):
        return
    if not install.bootstrap:
        raise StageError(
            "install",
            "setup",
            f"{install.installer} is not on PATH and no bootstrap command is configured",
        )

    log.info("%s not found; bootstrapping with: %s", install.installer, install.bootstrap)
    output = _run_installer(install.bootstrap, install.installer, install, env)
    if not shutil.which(install.installer, path=search_path):
        raise StageError(
            "install",
            "setup",
            f"Bootstrap finished but {install.installer} is not on PATH ({search_path})",
            output=output,
        )


def install_tools(install: InstallConfig, env: dict[str, str]) -> list[InstalledTool]:
    """Install every configured package, skipping ones already on ``PATH``.

    Args:
        install: Installer settings.
        env: Environment for the installer; must already include the bin
            dir on ``PATH`` (see :func:`env_with_bin_dir`).

    Raises:
        StageError: If a package cannot be installed or its binary does not
            resolve on ``PATH`` afterwards.
    """
    search_path = env.get("PATH")
    installed: list[InstalledTool] = []
    checked_installer = False

    for package in install.packages:
        existing = shutil.which(package, path=search_path)
        if existing:
            log.info("%s already installed at %s", package, existing)
            installed.append(InstalledTool(package, existing, already_present=True))
            continue

        if not checked_installer:
            ensure_installer(install, env)
            checked_installer = True

        log.info("Installing %s", package)
        output = _run_installer(install.command.format(package=package), package, install, env)

        resolved = shutil.which(package, path=search_path)
        if not resolved:
            raise StageError(
                "install",
                "setup",
                f"{package} was installed but is not on PATH ({search_path})",
                output=output,
            )
        log.info("Installed %s at %s", package, resolved)
        installed.append(InstalledTool(package, resolved))

    return installed

"""Environment preparation: source checkout and cache restore.

Runs before any build command.  Produces a populated working directory
and, when a cache entry matching the lock-file key exists, restores the
dependency and build state into the configured locations.
"""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from binbench.cache import CacheStore, build_cache_key, hash_files, resolve_cache_path
from binbench.config import PipelineConfig
from binbench.logging import get_logger
from binbench.stages import StageError, combined_output

log = get_logger("prepare")

_COMMIT_RE = re.compile(r"[0-9a-f]{7,40}")


@dataclass
class PreparedEnvironment:
    """State handed from the preparer to the later stages."""

    workdir: Path
    revision: str | None
    cache_key: str
    cache_hit: bool
    cache_paths: list[Path]


def _git(args: list[str], cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    log.debug("Running: git %s", " ".join(args))
    try:
        return subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            cwd=str(cwd) if cwd else None,
        )
    except FileNotFoundError:
        raise StageError("prepare", "setup", "git is not installed") from None


def head_revision(dest: Path) -> str | None:
    """Return the HEAD commit of the checkout in *dest*, or ``None``.

    A missing ``git`` binary also yields ``None``; the revision is only
    reported.
    """
    try:
        proc = _git(["rev-parse", "HEAD"], cwd=dest)
    except StageError as exc:
        log.debug("Cannot read revision of %s: %s", dest, exc.message)
        return None
    if proc.returncode == 0:
        return proc.stdout.strip()
    return None


def checkout_source(repo: str, dest: Path, ref: str = "", depth: int = 1) -> str | None:
    """Clone *repo* into *dest* (or reuse an existing clone) and return HEAD.

    Args:
        repo: Git URL or local path.  Empty means *dest* already holds the
            source; only its revision is reported.
        dest: Working directory.
        ref: Branch, tag or commit to check out.  Empty keeps the default.
        depth: Shallow clone depth.

    Raises:
        StageError: If a git command fails.
    """
    if not repo:
        if not dest.is_dir():
            raise StageError("prepare", "setup", f"Working directory does not exist: {dest}")
        return head_revision(dest)

    if (dest / ".git").exists():
        log.info("Reusing checkout in %s", dest)
        proc = _git(["fetch", f"--depth={depth}", "origin", ref or "HEAD"], cwd=dest)
        if proc.returncode != 0:
            raise StageError(
                "prepare",
                "setup",
                f"git fetch failed (exit {proc.returncode})",
                exit_code=proc.returncode,
                output=combined_output(proc),
            )
        proc = _git(["checkout", "--force", "FETCH_HEAD"], cwd=dest)
    elif ref and _COMMIT_RE.fullmatch(ref):
        # --branch only accepts branches and tags.
        log.info("Cloning %s into %s at commit %s", repo, dest, ref)
        proc = _git(["clone", repo, str(dest)])
        if proc.returncode == 0:
            proc = _git(["checkout", ref], cwd=dest)
    else:
        log.info("Cloning %s into %s", repo, dest)
        args = ["clone", f"--depth={depth}"]
        if ref:
            args += ["--branch", ref]
        proc = _git([*args, repo, str(dest)])

    if proc.returncode != 0:
        raise StageError(
            "prepare",
            "setup",
            f"Checkout of {repo} failed (exit {proc.returncode})",
            exit_code=proc.returncode,
            output=combined_output(proc),
        )

    revision = head_revision(dest)
    log.info("Checked out %s", revision or "(unknown revision)")
    return revision


def prepare_environment(
    config: PipelineConfig,
    store: CacheStore | None,
) -> PreparedEnvironment:
    """Check out the source and restore the dependency/build cache.

    With *store* set to ``None`` caching is skipped; the key is still
    computed so it can be reported.
    """
    workdir = config.workdir
    if config.checkout.repo:
        workdir.parent.mkdir(parents=True, exist_ok=True)
    revision = checkout_source(
        config.checkout.repo, workdir, config.checkout.ref, config.checkout.depth
    )

    lock_hash = hash_files(workdir, config.cache.lock_files)
    if not lock_hash:
        log.warning("No files match %s; cache key has an empty hash", config.cache.lock_files)
    key = build_cache_key(config.cache.prefix, lock_hash)
    paths = [resolve_cache_path(p, workdir) for p in config.cache.paths]
    log.info("Cache key: %s", key)

    hit = False
    if store is not None:
        hit = store.restore(key, paths)

    return PreparedEnvironment(
        workdir=workdir,
        revision=revision,
        cache_key=key,
        cache_hit=hit,
        cache_paths=paths,
    )

"""Dependency/build cache keyed by a lock-file hash.

A cache key is ``<os>-<prefix>-<hash>`` where the hash covers every file
matching the lock-file glob.  Identical lock-file contents always produce
the same key.  Entries live in a local directory, one sub-directory per
key, holding a copy of each cached path plus a small manifest::

    <cache root>/
        Linux-cargo-3f2a.../
            manifest.json
            0/   (copy of ~/.cargo/bin/)
            1/   (copy of target/)

A miss only costs build time; it is never an error.
"""

from __future__ import annotations

import hashlib
import json
import os
import platform
import shutil
import tempfile
from pathlib import Path

from binbench.logging import get_logger
from binbench.stages import StageError

log = get_logger("cache")

_MANIFEST = "manifest.json"
_OS_NAMES = {"Linux": "Linux", "Darwin": "macOS", "Windows": "Windows"}


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


def hash_files(root: Path, pattern: str) -> str:
    """Hash every file under *root* matching the glob *pattern*.

    Each file's SHA-256 digest is fed, in sorted path order, into an
    outer SHA-256.  Returns the hex digest, or ``""`` if nothing matches.
    Files inside ``.git`` are ignored.
    """
    matches = sorted(
        p
        for p in root.glob(pattern)
        if p.is_file() and ".git" not in p.relative_to(root).parts
    )
    if not matches:
        return ""

    outer = hashlib.sha256()
    for path in matches:
        outer.update(hashlib.sha256(path.read_bytes()).digest())
    log.debug("Hashed %d file(s) matching %s", len(matches), pattern)
    return outer.hexdigest()


def runner_os() -> str:
    """The OS label used in cache keys (``Linux``, ``macOS``, ``Windows``)."""
    system = platform.system()
    return _OS_NAMES.get(system, system or "unknown")


def build_cache_key(prefix: str, lock_hash: str, *, os_name: str | None = None) -> str:
    """Build the cache key ``<os>-<prefix>-<lock_hash>``."""
    return f"{os_name or runner_os()}-{prefix}-{lock_hash}"


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


def resolve_cache_path(path: str, workdir: Path) -> Path:
    """Expand ``~`` and anchor relative cache paths at *workdir*."""
    p = Path(path).expanduser()
    return p if p.is_absolute() else workdir / p


class CacheStore:
    """Directory-backed cache entries addressed by key."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    def entry_dir(self, key: str) -> Path:
        return self.root / key

    def has(self, key: str) -> bool:
        return (self.entry_dir(key) / _MANIFEST).is_file()

    def _saved_paths(self, key: str) -> list[str] | None:
        try:
            manifest = json.loads((self.entry_dir(key) / _MANIFEST).read_text())
        except (OSError, ValueError):
            return None
        return manifest.get("paths") if isinstance(manifest, dict) else None

    def restore(self, key: str, paths: list[Path]) -> bool:
        """Copy the entry for *key* back into *paths*.

        Returns:
            True on a hit, False on a miss.  Entries saved with a
            different path list count as a miss.

        Raises:
            StageError: If an existing entry cannot be read or copied.
        """
        if not self.has(key):
            log.info("Cache miss for %s", key)
            return False

        entry = self.entry_dir(key)
        try:
            manifest = json.loads((entry / _MANIFEST).read_text())
        except (OSError, ValueError) as exc:
            raise StageError(
                "prepare", "setup", f"Unreadable cache manifest for {key}: {exc}"
            ) from exc

        saved = manifest.get("paths", [])
        if saved != [str(p) for p in paths]:
            log.info("Cache entry %s was saved for different paths; treating as miss", key)
            return False

        try:
            for index, dest in enumerate(paths):
                src = entry / str(index)
                if not src.exists():
                    continue
                if src.is_dir():
                    shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
                else:
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(src, dest)
        except OSError as exc:
            raise StageError("prepare", "setup", f"Cache restore failed for {key}: {exc}") from exc

        log.info("Cache hit for %s (%d path(s) restored)", key, len(paths))
        return True

    def save(self, key: str, paths: list[Path]) -> bool:
        """Save *paths* under *key*.

        Writes to a temporary directory next to the final entry and renames
        it into place.  An existing entry for the key is left untouched
        unless it was saved for a different path list.

        Returns:
            True if a new entry was written.

        Raises:
            StageError: If the entry cannot be written.
        """
        wanted = [str(p) for p in paths]
        if self.has(key):
            if self._saved_paths(key) == wanted:
                log.debug("Cache entry %s already exists, not saving", key)
                return False
            log.info("Cache entry %s was saved for different paths; replacing it", key)

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            # Stale entry, or leftover from an interrupted save.
            if self.entry_dir(key).exists():
                shutil.rmtree(self.entry_dir(key))
            staging = Path(tempfile.mkdtemp(prefix=f".{key}-", dir=self.root))
            try:
                for index, src in enumerate(paths):
                    dest = staging / str(index)
                    if src.is_dir():
                        shutil.copytree(src, dest, symlinks=True)
                    elif src.is_file():
                        shutil.copy2(src, dest)
                    else:
                        log.debug("Cache path %s does not exist, skipping", src)
                (staging / _MANIFEST).write_text(
                    json.dumps({"key": key, "paths": wanted}, indent=2) + "\n"
                )
                os.replace(staging, self.entry_dir(key))
            except BaseException:
                shutil.rmtree(staging, ignore_errors=True)
                raise
        except OSError as exc:
            raise StageError("save-cache", "setup", f"Cache save failed for {key}: {exc}") from exc

        log.info("Saved cache entry %s", key)
        return True

"""Tests for binbench.cache — lock-file keys and the directory store."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from binbench.cache import (
    CacheStore,
    build_cache_key,
    hash_files,
    resolve_cache_path,
    runner_os,
)
from binbench.stages import StageError


class TestHashFiles(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_no_match_is_empty(self) -> None:
        self.assertEqual(hash_files(self.root, "**/Cargo.lock"), "")

    def test_unchanged_lock_file_gives_same_hash(self) -> None:
        lock = self.root / "Cargo.lock"
        lock.write_text('[[package]]\nname = "ezno"\n')
        first = hash_files(self.root, "**/Cargo.lock")
        second = hash_files(self.root, "**/Cargo.lock")
        self.assertEqual(first, second)
        self.assertEqual(len(first), 64)

    def test_same_contents_in_fresh_tree_gives_same_hash(self) -> None:
        (self.root / "Cargo.lock").write_text("version = 3\n")
        with tempfile.TemporaryDirectory() as other:
            (Path(other) / "Cargo.lock").write_text("version = 3\n")
            self.assertEqual(
                hash_files(self.root, "**/Cargo.lock"),
                hash_files(Path(other), "**/Cargo.lock"),
            )

    def test_changed_contents_change_hash(self) -> None:
        lock = self.root / "Cargo.lock"
        lock.write_text("version = 3\n")
        before = hash_files(self.root, "**/Cargo.lock")
        lock.write_text("version = 4\n")
        self.assertNotEqual(before, hash_files(self.root, "**/Cargo.lock"))

    def test_nested_lock_files_included(self) -> None:
        (self.root / "Cargo.lock").write_text("a\n")
        only_top = hash_files(self.root, "**/Cargo.lock")
        (self.root / "sub").mkdir()
        (self.root / "sub" / "Cargo.lock").write_text("b\n")
        self.assertNotEqual(only_top, hash_files(self.root, "**/Cargo.lock"))

    def test_git_directory_ignored(self) -> None:
        (self.root / "Cargo.lock").write_text("a\n")
        before = hash_files(self.root, "**/Cargo.lock")
        (self.root / ".git").mkdir()
        (self.root / ".git" / "Cargo.lock").write_text("b\n")
        self.assertEqual(before, hash_files(self.root, "**/Cargo.lock"))


class TestCacheKey(unittest.TestCase):
    def test_format(self) -> None:
        self.assertEqual(build_cache_key("cargo", "abc", os_name="Linux"), "Linux-cargo-abc")

    def test_default_os(self) -> None:
        with patch("binbench.cache.platform.system", return_value="Darwin"):
            self.assertEqual(runner_os(), "macOS")
            self.assertEqual(build_cache_key("cargo", "abc"), "macOS-cargo-abc")

    def test_deterministic(self) -> None:
        self.assertEqual(
            build_cache_key("cargo", "abc", os_name="Linux"),
            build_cache_key("cargo", "abc", os_name="Linux"),
        )


class TestResolveCachePath(unittest.TestCase):
    def test_relative(self) -> None:
        self.assertEqual(resolve_cache_path("target/", Path("/w")), Path("/w/target"))

    def test_home(self) -> None:
        self.assertEqual(
            resolve_cache_path("~/.cargo/bin/", Path("/w")),
            Path.home() / ".cargo" / "bin",
        )


class TestCacheStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.store = CacheStore(root / "cache")
        self.target = root / "work" / "target"
        self.target.mkdir(parents=True)
        (self.target / "release").mkdir()
        (self.target / "release" / "dep.rlib").write_text("compiled")
        self.single = root / "work" / "tool.bin"
        self.single.write_text("bin")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_miss_is_not_an_error(self) -> None:
        self.assertFalse(self.store.restore("Linux-cargo-x", [self.target]))

    def test_save_then_restore(self) -> None:
        self.assertTrue(self.store.save("k", [self.target, self.single]))
        self.assertTrue(self.store.has("k"))

        (self.target / "release" / "dep.rlib").unlink()
        self.single.unlink()

        self.assertTrue(self.store.restore("k", [self.target, self.single]))
        self.assertEqual((self.target / "release" / "dep.rlib").read_text(), "compiled")
        self.assertEqual(self.single.read_text(), "bin")

    def test_save_existing_key_is_noop(self) -> None:
        self.assertTrue(self.store.save("k", [self.target]))
        self.assertFalse(self.store.save("k", [self.target]))

    def test_missing_path_skipped_on_save(self) -> None:
        missing = self.target.parent / "nope"
        self.assertTrue(self.store.save("k", [missing, self.target]))
        self.assertTrue(self.store.restore("k", [missing, self.target]))
        self.assertFalse(missing.exists())

    def test_different_paths_is_miss(self) -> None:
        self.store.save("k", [self.target])
        self.assertFalse(self.store.restore("k", [self.single]))

    def test_entry_for_different_paths_replaced_on_save(self) -> None:
        self.store.save("k", [self.target])
        self.assertTrue(self.store.save("k", [self.single]))
        self.single.unlink()
        self.assertTrue(self.store.restore("k", [self.single]))
        self.assertEqual(self.single.read_text(), "bin")
        self.assertFalse(self.store.save("k", [self.single]))

    def test_corrupt_manifest_replaced_on_save(self) -> None:
        entry = self.store.entry_dir("k")
        entry.mkdir(parents=True)
        (entry / "manifest.json").write_text("{not json")
        self.assertTrue(self.store.save("k", [self.target]))
        self.assertTrue(self.store.restore("k", [self.target]))

    def test_manifest_written(self) -> None:
        self.store.save("k", [self.target])
        manifest = json.loads((self.store.entry_dir("k") / "manifest.json").read_text())
        self.assertEqual(manifest["key"], "k")
        self.assertEqual(manifest["paths"], [str(self.target)])

    def test_corrupt_manifest_raises(self) -> None:
        entry = self.store.entry_dir("k")
        entry.mkdir(parents=True)
        (entry / "manifest.json").write_text("{not json")
        with self.assertRaises(StageError) as ctx:
            self.store.restore("k", [self.target])
        self.assertEqual(ctx.exception.kind, "setup")

    def test_leftover_entry_without_manifest_replaced(self) -> None:
        leftover = self.store.entry_dir("k")
        leftover.mkdir(parents=True)
        (leftover / "junk").write_text("x")
        self.assertTrue(self.store.save("k", [self.target]))
        self.assertFalse((self.store.entry_dir("k") / "junk").exists())

    def test_no_staging_dirs_left(self) -> None:
        self.store.save("k", [self.target])
        names = [p.name for p in self.store.root.iterdir()]
        self.assertEqual(names, ["k"])


if __name__ == "__main__":
    unittest.main()

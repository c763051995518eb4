"""Tests for binbench.config — defaults, profiles, overrides, validation."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from binbench.config import (
    DEFAULT_FIXTURE_URL,
    PipelineConfig,
    apply_overrides,
    config_from_profile,
    load_profile,
    validate_config,
)


class TestDefaults(unittest.TestCase):
    """The defaults reproduce the original workflow."""

    def test_build_defaults(self) -> None:
        config = PipelineConfig()
        self.assertEqual(config.build.command, "cargo build --release")
        self.assertEqual(config.build.env, {"CARGO_PROFILE_RELEASE_DEBUG": "true"})
        self.assertEqual(config.build.artifact, "target/release/ezno")

    def test_global_env(self) -> None:
        self.assertEqual(PipelineConfig().env, {"CARGO_TERM_COLOR": "always"})

    def test_cache_defaults(self) -> None:
        config = PipelineConfig()
        self.assertEqual(config.cache.lock_files, "**/Cargo.lock")
        self.assertIn("target/", config.cache.paths)
        self.assertIn("~/.cargo/registry/index/", config.cache.paths)

    def test_install_and_benchmark_defaults(self) -> None:
        config = PipelineConfig()
        self.assertEqual(config.install.packages, ["hyperfine"])
        self.assertEqual(config.benchmark.tool, "hyperfine")
        self.assertEqual(config.benchmark.command, "{binary} build {fixture}")
        self.assertEqual(config.fixture.url, DEFAULT_FIXTURE_URL)

    def test_triggers(self) -> None:
        config = PipelineConfig()
        self.assertEqual(config.triggers.branches, ["main"])
        self.assertEqual(config.triggers.events, ["push", "pull_request"])

    def test_artifact_path_relative_to_workdir(self) -> None:
        config = PipelineConfig(workdir=Path("/src/ezno"))
        self.assertEqual(config.artifact_path, Path("/src/ezno/target/release/ezno"))

    def test_artifact_path_absolute(self) -> None:
        config = PipelineConfig()
        config.build.artifact = "/opt/bin/tool"
        self.assertEqual(config.artifact_path, Path("/opt/bin/tool"))

    def test_default_config_is_valid(self) -> None:
        errors = validate_config(PipelineConfig())
        self.assertEqual([e for e in errors if e.severity == "error"], [])


class TestValidation(unittest.TestCase):
    def _errors(self, config: PipelineConfig) -> list[str]:
        return [e.field for e in validate_config(config) if e.severity == "error"]

    def _warnings(self, config: PipelineConfig) -> list[str]:
        return [e.field for e in validate_config(config) if e.severity == "warning"]

    def test_empty_build_command(self) -> None:
        config = PipelineConfig()
        config.build.command = "  "
        self.assertIn("build.command", self._errors(config))

    def test_non_http_fixture(self) -> None:
        config = PipelineConfig()
        config.fixture.url = "ftp://example.com/x.js"
        self.assertIn("fixture.url", self._errors(config))

    def test_bad_checksum(self) -> None:
        config = PipelineConfig()
        config.fixture.sha256 = "abc"
        self.assertIn("fixture.sha256", self._errors(config))

    def test_good_checksum(self) -> None:
        config = PipelineConfig()
        config.fixture.sha256 = "A" * 64
        self.assertNotIn("fixture.sha256", self._errors(config))

    def test_unknown_tool(self) -> None:
        config = PipelineConfig()
        config.benchmark.tool = "perf"
        self.assertIn("benchmark.tool", self._errors(config))

    def test_command_without_binary(self) -> None:
        config = PipelineConfig()
        config.benchmark.command = "true {fixture}"
        self.assertIn("benchmark.command", self._errors(config))

    def test_command_without_fixture_is_warning(self) -> None:
        config = PipelineConfig()
        config.benchmark.command = "{binary} --version"
        self.assertNotIn("benchmark.command", self._errors(config))
        self.assertIn("benchmark.command", self._warnings(config))

    def test_too_few_runs(self) -> None:
        config = PipelineConfig()
        config.benchmark.runs = 1
        self.assertIn("benchmark.runs", self._errors(config))

    def test_negative_warmup(self) -> None:
        config = PipelineConfig()
        config.benchmark.warmup = -1
        self.assertIn("benchmark.warmup", self._errors(config))

    def test_installer_without_placeholder(self) -> None:
        config = PipelineConfig()
        config.install.command = "cargo binstall hyperfine"
        self.assertIn("install.command", self._errors(config))

    def test_hyperfine_not_installed_warns(self) -> None:
        config = PipelineConfig()
        config.install.enabled = False
        self.assertIn("install.packages", self._warnings(config))

    def test_unknown_event_warns(self) -> None:
        config = PipelineConfig()
        config.triggers.events = ["push", "schedule"]
        self.assertIn("triggers.events", self._warnings(config))

    def test_bad_depth(self) -> None:
        config = PipelineConfig()
        config.checkout.depth = 0
        self.assertIn("checkout.depth", self._errors(config))


class TestLoadProfile(unittest.TestCase):
    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_profile(Path("/nonexistent/binbench.yaml"))

    def test_non_mapping(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "p.yaml"
            path.write_text("- a\n- b\n")
            with self.assertRaises(ValueError):
                load_profile(path)

    def test_invalid_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "p.yaml"
            path.write_text("build: [unclosed\n")
            with self.assertRaises(ValueError):
                load_profile(path)

    def test_empty_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "p.yaml"
            path.write_text("")
            self.assertEqual(load_profile(path), {})

    def test_round_trip_through_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "p.yaml"
            path.write_text(
                "name: size check\n"
                "build:\n"
                "  artifact: target/release/tool\n"
                "  env:\n"
                "    CARGO_PROFILE_RELEASE_DEBUG: true\n"
                "benchmark:\n"
                "  tool: builtin\n"
                "  runs: 5\n"
            )
            config = config_from_profile(load_profile(path))
        self.assertEqual(config.name, "size check")
        self.assertEqual(config.build.artifact, "target/release/tool")
        self.assertEqual(config.build.env, {"CARGO_PROFILE_RELEASE_DEBUG": "true"})
        self.assertEqual(config.benchmark.tool, "builtin")
        self.assertEqual(config.benchmark.runs, 5)
        # Untouched keys keep their defaults.
        self.assertEqual(config.build.command, "cargo build --release")


class TestConfigFromProfile(unittest.TestCase):
    def test_empty_profile_gives_defaults(self) -> None:
        self.assertEqual(config_from_profile({}), PipelineConfig())

    def test_unknown_section(self) -> None:
        with self.assertRaises(ValueError):
            config_from_profile({"deploy": {}})

    def test_unknown_key(self) -> None:
        with self.assertRaises(ValueError):
            config_from_profile({"build": {"profile": "release"}})

    def test_section_must_be_mapping(self) -> None:
        with self.assertRaises(ValueError):
            config_from_profile({"build": "cargo build"})

    def test_global_env_replaced(self) -> None:
        config = config_from_profile({"env": {"RUST_LOG": "info"}})
        self.assertEqual(config.env, {"RUST_LOG": "info"})

    def test_cache_dir_becomes_path(self) -> None:
        config = config_from_profile({"cache": {"dir": "/tmp/cache"}})
        self.assertEqual(config.cache.dir, Path("/tmp/cache"))

    def test_cli_overrides_win(self) -> None:
        config = config_from_profile(
            {"benchmark": {"tool": "hyperfine", "runs": 5}},
            cli_overrides={"benchmark.tool": "builtin", "benchmark.runs": None},
        )
        self.assertEqual(config.benchmark.tool, "builtin")
        self.assertEqual(config.benchmark.runs, 5)

    def test_workdir_override(self) -> None:
        config = apply_overrides(PipelineConfig(), {"workdir": "/src"})
        self.assertEqual(config.workdir, Path("/src"))

    def test_list_field_given_as_string(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            config_from_profile({"triggers": {"branches": "main"}})
        self.assertIn("triggers.branches", str(ctx.exception))

    def test_packages_given_as_string(self) -> None:
        with self.assertRaises(ValueError):
            config_from_profile({"install": {"packages": "hyperfine"}})

    def test_triggers_section(self) -> None:
        config = config_from_profile({"triggers": {"branches": ["trunk"]}})
        self.assertEqual(config.triggers.branches, ["trunk"])
        self.assertEqual(config.triggers.events, ["push", "pull_request"])


if __name__ == "__main__":
    unittest.main()

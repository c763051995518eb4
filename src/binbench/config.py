"""Pipeline configuration and profile loading.

Handles:
- The default configuration, which reproduces the upstream "Performance and
  size" workflow (cargo release build of ``ezno`` timed with hyperfine).
- Loading YAML profiles that override those defaults section by section.
- Merging CLI options over profile values.
- Validating the final configuration before anything is executed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from binbench.triggers import KNOWN_EVENTS, TriggerConfig

log = logging.getLogger("binbench")

DEFAULT_FIXTURE_URL = (
    "https://gist.githubusercontent.com/kaleidawave/9554eb0ec0a2efc5727a3227fe997c8d"
    "/raw/6445ec1b802b52081e6dbb9c3a99e6de3f33dcfa/example.js"
)

BENCHMARK_TOOLS = ("hyperfine", "builtin")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class CheckoutConfig:
    """Where the source comes from.  An empty ``repo`` uses the workdir as is."""

    repo: str = ""
    ref: str = ""
    depth: int = 1


@dataclass
class CacheConfig:
    enabled: bool = True
    dir: Path = field(default_factory=lambda: Path("~/.cache/binbench"))
    prefix: str = "cargo"
    lock_files: str = "**/Cargo.lock"
    paths: list[str] = field(
        default_factory=lambda: [
            "~/.cargo/bin/",
            "~/.cargo/registry/index/",
            "~/.cargo/registry/cache/",
            "~/.cargo/git/db/",
            "target/",
        ]
    )


@dataclass
class InstallConfig:
    enabled: bool = True
    command: str = "cargo binstall --no-confirm {package}"
    packages: list[str] = field(default_factory=lambda: ["hyperfine"])
    bin_dir: str = "~/.cargo/bin"
    # Executable the install command needs; empty skips the check.
    installer: str = "cargo-binstall"
    # Run once when the installer is missing; empty fails instead.
    bootstrap: str = "cargo install --locked cargo-binstall"
    timeout: float | None = None


@dataclass
class BuildConfig:
    command: str = "cargo build --release"
    env: dict[str, str] = field(default_factory=lambda: {"CARGO_PROFILE_RELEASE_DEBUG": "true"})
    artifact: str = "target/release/ezno"
    timeout: float | None = None


@dataclass
class FixtureConfig:
    url: str = DEFAULT_FIXTURE_URL
    sha256: str | None = None
    timeout: float = 60.0


@dataclass
class BenchmarkConfig:
    tool: str = "hyperfine"  # hyperfine | builtin
    command: str = "{binary} build {fixture}"
    warmup: int | None = None  # None = the tool's default
    runs: int | None = None  # None = the tool's default
    timeout: float | None = None  # Per repetition, builtin only


# ---------------------------------------------------------------------------
# PipelineConfig
# ---------------------------------------------------------------------------


@dataclass
class PipelineConfig:
    """Resolved configuration for one pipeline run."""

    name: str = "Performance and size"
    workdir: Path = field(default_factory=lambda: Path("."))
    env: dict[str, str] = field(default_factory=lambda: {"CARGO_TERM_COLOR": "always"})

    triggers: TriggerConfig = field(default_factory=TriggerConfig)
    checkout: CheckoutConfig = field(default_factory=CheckoutConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    install: InstallConfig = field(default_factory=InstallConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    fixture: FixtureConfig = field(default_factory=FixtureConfig)
    benchmark: BenchmarkConfig = field(default_factory=BenchmarkConfig)

    @property
    def artifact_path(self) -> Path:
        """Absolute-or-workdir-relative path of the build artifact."""
        artifact = Path(self.build.artifact).expanduser()
        if artifact.is_absolute():
            return artifact
        return self.workdir / artifact

    @property
    def cache_dir(self) -> Path:
        return Path(self.cache.dir).expanduser()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: PipelineConfig) -> list[ValidationError]:
    """Validate a pipeline configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if not config.build.command.strip():
        errors.append(ValidationError("build.command", "Build command cannot be empty."))
    if not config.build.artifact.strip():
        errors.append(ValidationError("build.artifact", "Artifact path cannot be empty."))

    if not config.fixture.url.startswith(("http://", "https://")):
        errors.append(
            ValidationError(
                "fixture.url",
                f"Fixture URL must be http(s): {config.fixture.url!r}",
            )
        )
    if config.fixture.sha256 is not None:
        digest = config.fixture.sha256.lower()
        if len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest):
            errors.append(
                ValidationError("fixture.sha256", "Fixture checksum must be 64 hex digits.")
            )
    if config.fixture.timeout <= 0:
        errors.append(
            ValidationError(
                "fixture.timeout",
                f"Fixture timeout must be positive (got {config.fixture.timeout}).",
            )
        )

    bench = config.benchmark
    if bench.tool not in BENCHMARK_TOOLS:
        errors.append(
            ValidationError(
                "benchmark.tool",
                f"Unknown benchmark tool '{bench.tool}'. "
                f"Choose one of: {', '.join(BENCHMARK_TOOLS)}",
            )
        )
    if "{binary}" not in bench.command:
        errors.append(
            ValidationError(
                "benchmark.command",
                "Benchmark command must reference {binary}.",
            )
        )
    if "{fixture}" not in bench.command:
        errors.append(
            ValidationError(
                "benchmark.command",
                "Benchmark command does not reference {fixture}; the fixture will be unused.",
                severity="warning",
            )
        )
    if bench.warmup is not None and bench.warmup < 0:
        errors.append(
            ValidationError(
                "benchmark.warmup",
                f"Warmup runs cannot be negative (got {bench.warmup}).",
            )
        )
    if bench.runs is not None and bench.runs < 2:
        errors.append(
            ValidationError(
                "benchmark.runs",
                f"Need at least 2 runs for a timing distribution (got {bench.runs}).",
            )
        )

    if config.install.enabled and config.install.packages:
        if "{package}" not in config.install.command:
            errors.append(
                ValidationError(
                    "install.command",
                    "Installer command must reference {package}.",
                )
            )
    if bench.tool == "hyperfine" and (
        not config.install.enabled or "hyperfine" not in config.install.packages
    ):
        errors.append(
            ValidationError(
                "install.packages",
                "hyperfine is not installed by the pipeline; it must already be on PATH.",
                severity="warning",
            )
        )

    for event in config.triggers.events:
        if event not in KNOWN_EVENTS:
            errors.append(
                ValidationError(
                    "triggers.events",
                    f"Event '{event}' never triggers a run (known: {', '.join(KNOWN_EVENTS)}).",
                    severity="warning",
                )
            )
    if not config.triggers.branches:
        errors.append(
            ValidationError(
                "triggers.branches",
                "No trigger branches defined; CI events will never run the pipeline.",
                severity="warning",
            )
        )

    if config.cache.enabled and not config.cache.paths:
        errors.append(
            ValidationError(
                "cache.paths",
                "Caching is enabled but no cache paths are defined.",
                severity="warning",
            )
        )

    if config.checkout.depth < 1:
        errors.append(
            ValidationError(
                "checkout.depth",
                f"Clone depth must be at least 1 (got {config.checkout.depth}).",
            )
        )

    return errors


# ---------------------------------------------------------------------------
# YAML profile loading
# ---------------------------------------------------------------------------


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load a pipeline profile from a YAML file.

    Profile format (every key optional)::

        name: "Performance and size"
        workdir: "."
        env:
          CARGO_TERM_COLOR: always
        triggers:
          branches: [main]
          events: [push, pull_request]
        checkout:
          repo: https://github.com/kaleidawave/ezno
          ref: main
        cache:
          dir: ~/.cache/binbench
          lock_files: "**/Cargo.lock"
          paths: [~/.cargo/registry/index/, target/]
        install:
          packages: [hyperfine]
        build:
          command: cargo build --release
          env:
            CARGO_PROFILE_RELEASE_DEBUG: "true"
          artifact: target/release/ezno
        fixture:
          url: https://example.com/example.js
        benchmark:
          tool: hyperfine
          command: "{binary} build {fixture}"
          warmup: 3

    Returns:
        The parsed YAML as a dict.
    """
    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    try:
        data = yaml.safe_load(profile_path.read_text())
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in profile {profile_path}: {exc}") from exc
    log.debug("Loaded profile %s", profile_path)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Profile must be a YAML mapping, got {type(data).__name__}")
    return data


_SECTIONS: dict[str, type] = {
    "triggers": TriggerConfig,
    "checkout": CheckoutConfig,
    "cache": CacheConfig,
    "install": InstallConfig,
    "build": BuildConfig,
    "fixture": FixtureConfig,
    "benchmark": BenchmarkConfig,
}
_TOP_LEVEL = {"name", "workdir", "env", *_SECTIONS}


def _env_value(value: Any) -> str:
    # YAML reads `true` as a bool; cargo expects the lowercase spelling.
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _env_mapping(data: Any) -> dict[str, str]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("env must be a mapping of NAME: value")
    return {str(k): _env_value(v) for k, v in data.items()}


def _apply_section(target: Any, section: str, data: Any) -> None:
    if data is None:
        return
    if not isinstance(data, dict):
        raise ValueError(f"Profile section '{section}' must be a mapping")
    known = set(target.__dataclass_fields__)
    for key, value in data.items():
        if key not in known:
            raise ValueError(
                f"Unknown key '{key}' in section '{section}'. Valid keys: {', '.join(sorted(known))}"
            )
        if isinstance(getattr(target, key), list) and not isinstance(value, list):
            raise ValueError(
                f"'{section}.{key}' must be a list, got {type(value).__name__}"
            )
        if key == "env":
            value = _env_mapping(value)
        elif key == "dir":
            value = Path(value)
        setattr(target, key, value)


def config_from_profile(
    profile_data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> PipelineConfig:
    """Build a PipelineConfig from a parsed YAML profile.

    Sections override the defaults key by key; ``env`` mappings replace
    the default mapping for their section.  CLI overrides (keys of the form
    ``"section.key"`` or top-level names) take precedence over the profile.
    ``None`` override values are ignored.
    """
    unknown = set(profile_data) - _TOP_LEVEL
    if unknown:
        raise ValueError(
            f"Unknown profile section(s): {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(_TOP_LEVEL))}"
        )

    config = PipelineConfig()
    if profile_data.get("name"):
        config.name = str(profile_data["name"])
    if profile_data.get("workdir"):
        config.workdir = Path(profile_data["workdir"])
    if "env" in profile_data:
        config.env = _env_mapping(profile_data["env"])

    for section in _SECTIONS:
        _apply_section(getattr(config, section), section, profile_data.get(section))

    apply_overrides(config, cli_overrides or {})
    return config


def apply_overrides(config: PipelineConfig, overrides: dict[str, Any]) -> PipelineConfig:
    """Apply ``"section.key" -> value`` overrides in place, skipping ``None``."""
    for dotted, value in overrides.items():
        if value is None:
            continue
        if "." not in dotted:
            if dotted == "workdir":
                value = Path(value)
            setattr(config, dotted, value)
            continue
        section, key = dotted.split(".", 1)
        _apply_section(getattr(config, section), section, {key: value})
    return config

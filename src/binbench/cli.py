"""Command-line interface for binbench.

Subcommands:
    binbench run         Run the full build/benchmark/size pipeline
    binbench cache-key   Print the cache key for a working directory
    binbench size        Print the size line for a binary
    binbench bench       Time a binary against a fixture
    binbench should-run  Check whether a CI event triggers the pipeline
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import click

from binbench import __version__
from binbench.logging import setup_logging


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """binbench — Build, benchmark and size-check a compiled CLI tool."""


def _load_config(profile_path: Path | None, overrides: dict[str, Any]) -> Any:
    from binbench.config import config_from_profile, load_profile

    try:
        data = load_profile(profile_path) if profile_path else {}
        return config_from_profile(data, cli_overrides=overrides)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--profile") from exc


_profile_option = click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML profile overriding the default pipeline.",
)
_workdir_option = click.option(
    "--workdir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Working directory (default: profile value or current directory).",
)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command()
@_profile_option
@_workdir_option
@click.option("--repo", default=None, help="Git repository to clone into the workdir.")
@click.option("--ref", default=None, help="Branch, tag or commit to check out.")
@click.option("--artifact", default=None, help="Build output path, relative to the workdir.")
@click.option("--fixture-url", default=None, help="Benchmark input URL.")
@click.option(
    "--fixture-sha256",
    default=None,
    help="Expected SHA-256 of the fixture (verification is off by default).",
)
@click.option(
    "--tool",
    type=click.Choice(["hyperfine", "builtin"]),
    default=None,
    help="Timing backend (default: hyperfine).",
)
@click.option("--runs", type=int, default=None, help="Measured repetitions.")
@click.option("--warmup", type=int, default=None, help="Warm-up repetitions.")
@click.option("--skip-install", is_flag=True, help="Do not install tools; use what is on PATH.")
@click.option("--no-cache", is_flag=True, help="Neither restore nor save the cache.")
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Cache root directory.",
)
@click.option("--event", envvar="GITHUB_EVENT_NAME", default=None, help="Triggering event.")
@click.option("--branch", envvar="GITHUB_REF_NAME", default=None, help="Pushed/source branch.")
@click.option(
    "--base-branch", envvar="GITHUB_BASE_REF", default=None, help="Target branch of a PR."
)
@click.option("--json", "as_json", is_flag=True, help="Print a JSON report instead of text.")
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option("--log-file", type=click.Path(path_type=Path), default=None)
def run(  # noqa: PLR0913
    profile_path: Path | None,
    workdir: Path | None,
    repo: str | None,
    ref: str | None,
    artifact: str | None,
    fixture_url: str | None,
    fixture_sha256: str | None,
    tool: str | None,
    runs: int | None,
    warmup: int | None,
    skip_install: bool,
    no_cache: bool,
    cache_dir: Path | None,
    event: str | None,
    branch: str | None,
    base_branch: str | None,
    as_json: bool,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Run the build, benchmark and size pipeline.

    Prints the timing summary followed by ``Binary is <N> bytes``.  Exits
    non-zero when any stage fails.

    \b
    Examples:
        # Defaults: cargo release build of ./target/release/ezno, hyperfine
        binbench run

        # Clone and benchmark a specific ref without hyperfine
        binbench run --repo https://github.com/kaleidawave/ezno \\
            --workdir ./ezno --ref main --tool builtin --skip-install
    """
    from binbench.cache import CacheStore
    from binbench.pipeline import PipelineRunner
    from binbench.triggers import should_run

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    config = _load_config(
        profile_path,
        {
            "workdir": workdir,
            "checkout.repo": repo,
            "checkout.ref": ref,
            "build.artifact": artifact,
            "fixture.url": fixture_url,
            "fixture.sha256": fixture_sha256,
            "benchmark.tool": tool,
            "benchmark.runs": runs,
            "benchmark.warmup": warmup,
            "cache.dir": cache_dir,
        },
    )
    if no_cache:
        config.cache.enabled = False

    if event and not should_run(config.triggers, event, branch, base_branch):
        click.echo(
            f"Skipping: event '{event}' on '{base_branch or branch}' does not trigger "
            f"'{config.name}'."
        )
        return

    store = CacheStore(config.cache_dir) if config.cache.enabled else None
    runner = PipelineRunner(config, store=store, skip_install=skip_install)
    try:
        report = runner.run()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    except KeyboardInterrupt:
        click.echo("\nPipeline interrupted.", err=True)
        raise SystemExit(130)  # noqa: B904

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    elif report.measurement is not None:
        click.echo(report.measurement.timing_output.rstrip("\n"))
        click.echo(report.measurement.size_line)

    if not report.ok:
        failed = report.failed_stage
        if failed is not None:
            click.echo(f"Error: stage '{failed.name}' failed: {failed.detail}", err=True)
        sys.exit(report.exit_code)


# ---------------------------------------------------------------------------
# cache-key
# ---------------------------------------------------------------------------


@main.command("cache-key")
@_profile_option
@_workdir_option
def cache_key(profile_path: Path | None, workdir: Path | None) -> None:
    """Print the cache key derived from the lock file(s)."""
    from binbench.cache import build_cache_key, hash_files

    config = _load_config(profile_path, {"workdir": workdir})
    lock_hash = hash_files(config.workdir, config.cache.lock_files)
    click.echo(build_cache_key(config.cache.prefix, lock_hash))


# ---------------------------------------------------------------------------
# size
# ---------------------------------------------------------------------------


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def size(binary: Path) -> None:
    """Print ``Binary is <N> bytes`` for BINARY."""
    from binbench.bench.display import format_size_line
    from binbench.measure import measure_size

    click.echo(format_size_line(measure_size(binary)))


# ---------------------------------------------------------------------------
# bench
# ---------------------------------------------------------------------------


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("fixture", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--tool",
    type=click.Choice(["hyperfine", "builtin"]),
    default="hyperfine",
    show_default=True,
)
@click.option(
    "--command",
    "template",
    default="{binary} build {fixture}",
    show_default=True,
    help="Command template.",
)
@click.option("--runs", type=int, default=None, help="Measured repetitions.")
@click.option("--warmup", type=int, default=None, help="Warm-up repetitions.")
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
def bench(
    binary: Path,
    fixture: Path,
    tool: str,
    template: str,
    runs: int | None,
    warmup: int | None,
    verbose: bool,
) -> None:
    """Time BINARY against FIXTURE without building anything."""
    from binbench.config import BenchmarkConfig
    from binbench.measure import build_benchmark_command, run_timing
    from binbench.stages import StageError, merge_env

    setup_logging(verbose=verbose, quiet=not verbose)

    benchmark = BenchmarkConfig(tool=tool, command=template, runs=runs, warmup=warmup)
    workdir = Path.cwd()
    command = build_benchmark_command(template, binary, fixture, workdir)
    try:
        _, output = run_timing(benchmark, command, cwd=workdir, env=merge_env())
    except StageError as exc:
        if exc.output:
            click.echo(exc.output.rstrip("\n"), err=True)
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(exc.exit_code if exc.exit_code > 0 else 1)
    click.echo(output.rstrip("\n"))


# ---------------------------------------------------------------------------
# should-run
# ---------------------------------------------------------------------------


@main.command("should-run")
@_profile_option
@click.option("--event", envvar="GITHUB_EVENT_NAME", required=True, help="Triggering event.")
@click.option("--branch", envvar="GITHUB_REF_NAME", default=None, help="Pushed/source branch.")
@click.option(
    "--base-branch", envvar="GITHUB_BASE_REF", default=None, help="Target branch of a PR."
)
def should_run_cmd(
    profile_path: Path | None,
    event: str,
    branch: str | None,
    base_branch: str | None,
) -> None:
    """Exit 0 if EVENT on BRANCH triggers the pipeline, 1 otherwise."""
    from binbench.triggers import should_run

    config = _load_config(profile_path, {})
    if should_run(config.triggers, event, branch, base_branch):
        click.echo("yes")
        return
    click.echo("no")
    sys.exit(1)

"""Pipeline execution engine.

Orchestrates, strictly in order:
1. prepare  - source checkout and cache restore
2. install  - benchmarking utility installation
3. build    - optimized build with debug symbols
4. measure  - fixture retrieval, timing, binary size

Each stage blocks until its sub-processes exit.  The first failing stage
ends the run; later stages never start.  After a successful run on a cache
miss the cache entry is saved.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from binbench.build import build_artifact
from binbench.cache import CacheStore
from binbench.config import PipelineConfig, validate_config
from binbench.install import env_with_bin_dir, install_tools
from binbench.logging import get_logger, log_output
from binbench.measure import MeasurementResult, run_measurement
from binbench.prepare import PreparedEnvironment, prepare_environment
from binbench.stages import StageError, StageResult, merge_env

log = get_logger("pipeline")

STAGES = ("prepare", "install", "build", "measure")

StageCallback = Callable[[StageResult], None]


@dataclass
class PipelineReport:
    """Everything a run produced, up to the first failure."""

    name: str
    stages: list[StageResult] = field(default_factory=list)
    cache_key: str = ""
    cache_hit: bool = False
    revision: str | None = None
    artifact: Path | None = None
    measurement: MeasurementResult | None = None

    @property
    def ok(self) -> bool:
        return len(self.stages) == len(STAGES) and all(s.ok for s in self.stages)

    @property
    def failed_stage(self) -> StageResult | None:
        for stage in self.stages:
            if not stage.ok:
                return stage
        return None

    @property
    def exit_code(self) -> int:
        """0 on success, else the failing stage's positive code or 1."""
        failed = self.failed_stage
        if failed is None:
            return 0 if self.ok else 1
        return failed.exit_code if failed.exit_code > 0 else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "ok": self.ok,
            "exit_code": self.exit_code,
            "cache_key": self.cache_key,
            "cache_hit": self.cache_hit,
            "revision": self.revision,
            "artifact": str(self.artifact) if self.artifact else None,
            "stages": [s.to_dict() for s in self.stages],
            "measurement": self.measurement.to_dict() if self.measurement else None,
        }


class PipelineRunner:
    """Executes the pipeline according to a PipelineConfig.

    Usage::

        runner = PipelineRunner(config, store=CacheStore(config.cache_dir))
        report = runner.run()
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        store: CacheStore | None = None,
        skip_install: bool = False,
        on_stage: StageCallback | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.skip_install = skip_install
        self.on_stage = on_stage

    def run(self) -> PipelineReport:
        """Run all stages.

        Raises:
            ValueError: If the configuration is invalid.
        """
        errors = validate_config(self.config)
        for w in (e for e in errors if e.severity == "warning"):
            log.warning("Config warning: %s: %s", w.field, w.message)
        fatal = [e for e in errors if e.severity == "error"]
        if fatal:
            messages = [f"  {e.field}: {e.message}" for e in fatal]
            raise ValueError("Invalid pipeline configuration:\n" + "\n".join(messages))

        report = PipelineReport(name=self.config.name)
        env = env_with_bin_dir(self.config.install, merge_env(self.config.env))

        prepared: PreparedEnvironment | None = self._stage(
            report, "prepare", lambda: prepare_environment(self.config, self.store)
        )
        if prepared is None:
            return report
        report.cache_key = prepared.cache_key
        report.cache_hit = prepared.cache_hit
        report.revision = prepared.revision

        if not self._stage(report, "install", lambda: self._install(env)):
            return report

        build = self._stage(
            report,
            "build",
            lambda: build_artifact(
                self.config.build,
                self.config.artifact_path,
                workdir=prepared.workdir,
                env=env,
            ),
        )
        if build is None:
            return report
        report.artifact = build.artifact

        measurement = self._stage(
            report,
            "measure",
            lambda: run_measurement(
                build.artifact,
                fixture=self.config.fixture,
                benchmark=self.config.benchmark,
                workdir=prepared.workdir,
                env=env,
            ),
        )
        if measurement is None:
            return report
        report.measurement = measurement

        self._save_cache(prepared)
        log.info("Pipeline '%s' completed", self.config.name)
        return report

    def _install(self, env: dict[str, str]) -> bool:
        if self.skip_install or not self.config.install.enabled:
            log.info("Tool installation skipped")
            return True
        install_tools(self.config.install, env)
        return True

    def _stage(self, report: PipelineReport, name: str, fn: Callable[[], Any]) -> Any:
        """Run one stage, record its result, and return its value.

        Returns ``None`` when the stage failed.
        """
        log.info("==> %s", name)
        start = time.monotonic()
        try:
            value = fn()
        except StageError as exc:
            duration = time.monotonic() - start
            result = StageResult(
                name=name,
                ok=False,
                exit_code=exc.exit_code,
                duration_s=duration,
                output=exc.output,
                error_kind=exc.kind,
                detail=exc.message,
            )
            log_output(log, exc.output, level=logging.ERROR)
            log.error("Stage '%s' failed (%s error): %s", name, exc.kind, exc.message)
            report.stages.append(result)
            self._notify(result)
            return None

        result = StageResult(name=name, ok=True, duration_s=time.monotonic() - start)
        log.info("Stage '%s' finished in %.1fs", name, result.duration_s)
        report.stages.append(result)
        self._notify(result)
        return value

    def _notify(self, result: StageResult) -> None:
        if self.on_stage is not None:
            self.on_stage(result)

    def _save_cache(self, prepared: PreparedEnvironment) -> None:
        if self.store is None or prepared.cache_hit:
            return
        try:
            self.store.save(prepared.cache_key, prepared.cache_paths)
        except StageError as exc:
            # The run itself succeeded; a lost cache entry only costs time.
            log.warning("Could not save cache entry: %s", exc.message)

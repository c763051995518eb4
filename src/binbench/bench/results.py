"""Timing summary produced by either benchmark backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from binbench.bench.stats import describe, detect_outliers


@dataclass
class TimingSummary:
    """Wall-clock distribution of the benchmarked command, in seconds."""

    command: str
    mean: float
    stddev: float
    median: float
    min: float
    max: float
    user: float = 0.0  # mean user CPU time
    system: float = 0.0  # mean system CPU time
    times: list[float] = field(default_factory=list)
    tool: str = ""

    @property
    def runs(self) -> int:
        return len(self.times)

    @property
    def variance(self) -> float:
        return self.stddev**2

    @property
    def has_outliers(self) -> bool:
        return any(detect_outliers(self.times))

    @classmethod
    def from_samples(
        cls,
        command: str,
        times: list[float],
        *,
        user_times: list[float] | None = None,
        sys_times: list[float] | None = None,
        tool: str = "builtin",
    ) -> TimingSummary:
        """Summarize raw wall-clock samples."""
        stats = describe(times)
        user = sum(user_times) / len(user_times) if user_times else 0.0
        system = sum(sys_times) / len(sys_times) if sys_times else 0.0
        return cls(
            command=command,
            mean=stats.mean,
            stddev=stats.stdev,
            median=stats.median,
            min=stats.min,
            max=stats.max,
            user=user,
            system=system,
            times=list(times),
            tool=tool,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "tool": self.tool,
            "runs": self.runs,
            "mean": round(self.mean, 6),
            "stddev": round(self.stddev, 6),
            "median": round(self.median, 6),
            "min": round(self.min, 6),
            "max": round(self.max, 6),
            "user": round(self.user, 6),
            "system": round(self.system, 6),
            "times": [round(t, 6) for t in self.times],
        }

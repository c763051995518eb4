"""Trigger conditions: which repository events start the pipeline.

The pipeline runs on pushes to a designated branch and on pull requests
that target one.  Other events never run it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

PUSH = "push"
PULL_REQUEST = "pull_request"
KNOWN_EVENTS = (PUSH, PULL_REQUEST)


@dataclass
class TriggerConfig:
    """Branches and events that start a run."""

    branches: list[str] = field(default_factory=lambda: ["main"])
    events: list[str] = field(default_factory=lambda: [PUSH, PULL_REQUEST])


def _normalize_branch(ref: str) -> str:
    # Accept full refs as reported by some CI systems.
    for prefix in ("refs/heads/", "refs/remotes/origin/"):
        if ref.startswith(prefix):
            return ref[len(prefix) :]
    return ref


def should_run(
    triggers: TriggerConfig,
    event: str,
    branch: str | None,
    base_branch: str | None = None,
) -> bool:
    """Decide whether *event* on *branch* should start the pipeline.

    For ``push`` the pushed branch must be designated.  For
    ``pull_request`` the branch the change targets (*base_branch*) must be
    designated; *branch* is used when no base branch is known.
    """
    if event not in triggers.events:
        return False
    if event == PULL_REQUEST:
        target = base_branch or branch
    elif event == PUSH:
        target = branch
    else:
        return False
    if not target:
        return False
    return _normalize_branch(target) in triggers.branches

"""Data models for the CircleCI sync engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class CollectedDeployment:
    """A deploy/release workflow mapped onto the deployments table.

    Pure data structure, no DB dependencies.
    """

    repo_name: str
    commit_sha: str
    branch: str | None
    environment: str
    status: str
    deployed_at: datetime
    duration_seconds: int | None = None
    external_workflow_id: str | None = None


@dataclass
class CircleCISyncResult:
    """Summary of one team sync."""

    team_id: int
    projects: list[str] = field(default_factory=list)
    pipelines: int = 0
    deployments: int = 0
    skipped_pipelines: list[str] = field(default_factory=list)


@dataclass
class PipelineScan:
    """Output of one project scan."""

    deployments: list[CollectedDeployment] = field(default_factory=list)
    pipelines: int = 0
    skipped_pipelines: list[str] = field(default_factory=list)

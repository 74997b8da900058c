"""Data models for the GitHub sync engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class CollectedCommit:
    """A commit as returned by the commits API, ready for ``upsert_commit``.

    Pure data structure, no DB dependencies.
    """

    sha: str
    author: str
    message: str
    committed_at: datetime
    pr_number: int | None = None


@dataclass
class CollectedPullRequest:
    """A pull request with its first-commit time resolved."""

    pr_number: int
    title: str
    author: str
    state: str
    created_at: datetime
    merged_at: datetime | None = None
    closed_at: datetime | None = None
    first_commit_at: datetime | None = None
    base_branch: str | None = None
    head_branch: str | None = None
    commits_count: int = 0


@dataclass
class GitHubSyncResult:
    """Summary of one team sync."""

    team_id: int
    repos: list[str] = field(default_factory=list)
    commits: int = 0
    pull_requests: int = 0

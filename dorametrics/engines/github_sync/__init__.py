"""GitHub sync engine — commit and pull request collection without DB access."""

from dorametrics.engines.github_sync.collector import collect, fetch_first_commit_at
from dorametrics.engines.github_sync.github_client import GitHubClient, RateLimitError
from dorametrics.engines.github_sync.models import (
    CollectedCommit,
    CollectedPullRequest,
    GitHubSyncResult,
)
from dorametrics.engines.github_sync.ref_parser import extract_pr_number
from dorametrics.engines.github_sync.runner import GitHubSyncRunner

__all__ = [
    "CollectedCommit",
    "CollectedPullRequest",
    "GitHubClient",
    "GitHubSyncResult",
    "GitHubSyncRunner",
    "RateLimitError",
    "collect",
    "extract_pr_number",
    "fetch_first_commit_at",
]

"""GitHub sync engine — pure API collection, no DB access."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import structlog

from dorametrics.engines.github_sync.github_client import GitHubClient, RateLimitError
from dorametrics.engines.github_sync.models import CollectedCommit, CollectedPullRequest
from dorametrics.engines.github_sync.ref_parser import extract_pr_number

log = structlog.get_logger("dorametrics.engine")

COMMIT_LOOKBACK_DAYS = 30
_MAX_PAGES = 3


async def collect(
    client: GitHubClient,
    owner: str,
    repo: str,
    *,
    since: datetime | None = None,
) -> tuple[list[CollectedCommit], list[CollectedPullRequest]]:
    """Collect commits and pull requests for a single repository.

    *since* bounds the commit listing and defaults to 30 days ago; the pulls
    API has no such filter. HTTP errors propagate.
    """
    if since is None:
        since = datetime.now(timezone.utc) - timedelta(days=COMMIT_LOOKBACK_DAYS)

    commits, pull_requests = await asyncio.gather(
        collect_commits(client, owner, repo, since=since),
        collect_pull_requests(client, owner, repo),
    )
    return commits, pull_requests


# ── sub-collectors ────────────────────────────────────────────────────────


async def collect_commits(
    client: GitHubClient,
    owner: str,
    repo: str,
    *,
    since: datetime,
) -> list[CollectedCommit]:
    """GET /repos/{owner}/{repo}/commits?since=…"""
    params = {"since": since.isoformat()}
    commits: list[CollectedCommit] = []
    async for item in client.get_paginated(
        f"/repos/{owner}/{repo}/commits", params, max_pages=_MAX_PAGES
    ):
        commit = item.get("commit") or {}
        author_info = commit.get("author") or {}
        committed_at = parse_datetime(author_info.get("date"))
        if committed_at is None:
            log.warning("github.commit_without_date", repo=repo, sha=item.get("sha"))
            continue

        message = commit.get("message") or ""
        commits.append(
            CollectedCommit(
                sha=item["sha"],
                author=author_info.get("name") or "Unknown",
                message=message,
                committed_at=committed_at,
                pr_number=extract_pr_number(message),
            )
        )
    return commits


async def collect_pull_requests(
    client: GitHubClient,
    owner: str,
    repo: str,
) -> list[CollectedPullRequest]:
    """GET /repos/{owner}/{repo}/pulls?state=all, most recently updated first.

    Each PR's first commit is looked up separately; see
    :func:`fetch_first_commit_at`.
    """
    params = {"state": "all", "sort": "updated", "direction": "desc"}
    pull_requests: list[CollectedPullRequest] = []
    async for item in client.get_paginated(
        f"/repos/{owner}/{repo}/pulls", params, max_pages=_MAX_PAGES
    ):
        created_at = parse_datetime(item.get("created_at"))
        if created_at is None:
            log.warning("github.pr_without_created_at", repo=repo, pr=item.get("number"))
            continue

        pr_number = item["number"]
        merged_at = parse_datetime(item.get("merged_at"))
        commits_count = item.get("commits")

        pull_requests.append(
            CollectedPullRequest(
                pr_number=pr_number,
                title=item.get("title") or "",
                author=(item.get("user") or {}).get("login") or "unknown",
                state="merged" if merged_at else item.get("state") or "open",
                created_at=created_at,
                merged_at=merged_at,
                closed_at=parse_datetime(item.get("closed_at")),
                first_commit_at=await fetch_first_commit_at(client, owner, repo, pr_number),
                base_branch=(item.get("base") or {}).get("ref"),
                head_branch=(item.get("head") or {}).get("ref"),
                commits_count=commits_count if isinstance(commits_count, int) else 0,
            )
        )
    return pull_requests


async def fetch_first_commit_at(
    client: GitHubClient,
    owner: str,
    repo: str,
    pr_number: int,
) -> datetime | None:
    """Timestamp of the PR's first commit: author date, else committer date.

    A failed lookup is logged and yields ``None``; the upsert then keeps
    whatever value was stored before.
    """
    try:
        commits = await client.get_json(
            f"/repos/{owner}/{repo}/pulls/{pr_number}/commits",
            {"per_page": 1, "page": 1},
        )
    except (httpx.HTTPError, RateLimitError) as exc:
        log.warning("github.first_commit_failed", repo=repo, pr=pr_number, error=str(exc))
        return None

    if not commits:
        return None
    commit = commits[0].get("commit") or {}
    raw = (commit.get("author") or {}).get("date") or (commit.get("committer") or {}).get("date")
    return parse_datetime(raw)


# ── helpers ───────────────────────────────────────────────────────────────


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed), ``None`` on failure."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

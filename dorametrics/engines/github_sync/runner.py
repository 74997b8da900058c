"""GitHubSyncRunner — orchestrates the collect engine + Service-layer DB writes."""

from __future__ import annotations

import os

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dorametrics.engines.github_sync.collector import collect
from dorametrics.engines.github_sync.github_client import GitHubClient
from dorametrics.engines.github_sync.models import GitHubSyncResult
from dorametrics.services.ingest_service import IngestService
from dorametrics.services.team_service import TeamService

log = structlog.get_logger("dorametrics.engine")


class GitHubSyncRunner:
    """Orchestration layer: pure engine → Service-layer DB writes."""

    def __init__(
        self,
        team_service: TeamService,
        ingest_service: IngestService,
        *,
        org: str | None = None,
    ) -> None:
        self._team_service = team_service
        self._ingest_service = ingest_service
        self._org = org

    @property
    def org(self) -> str:
        """Repository owner; falls back to ``GITHUB_ORG`` at call time."""
        return self._org if self._org is not None else os.environ.get("GITHUB_ORG", "")

    async def sync_team(
        self,
        session: AsyncSession,
        team_id: int,
        client: GitHubClient,
    ) -> GitHubSyncResult:
        """Pull commits and PRs for every repository of a team and upsert them.

        Raises :class:`TeamNotFoundError` for an unknown team. A failing
        repository aborts the sync and the caller's transaction.
        """
        repos = await self._team_service.get_repos(session, team_id)
        result = GitHubSyncResult(team_id=team_id, repos=list(repos))
        owner = self.org

        for repo in repos:
            log.info("github.sync_repo", team_id=team_id, repo=f"{owner}/{repo}")
            commits, pull_requests = await collect(client, owner, repo)

            for commit in commits:
                await self._ingest_service.upsert_commit(
                    session,
                    sha=commit.sha,
                    repo_name=repo,
                    team_id=team_id,
                    author=commit.author,
                    message=commit.message,
                    committed_at=commit.committed_at,
                    pr_number=commit.pr_number,
                )

            # PRs after commits so merged PRs can link the commits just written
            for pr in pull_requests:
                await self._ingest_service.upsert_pull_request(
                    session,
                    repo_name=repo,
                    pr_number=pr.pr_number,
                    team_id=team_id,
                    title=pr.title,
                    author=pr.author,
                    state=pr.state,
                    created_at=pr.created_at,
                    merged_at=pr.merged_at,
                    closed_at=pr.closed_at,
                    first_commit_at=pr.first_commit_at,
                    base_branch=pr.base_branch,
                    head_branch=pr.head_branch,
                    commits_count=pr.commits_count,
                )

            result.commits += len(commits)
            result.pull_requests += len(pull_requests)

        log.info(
            "github.sync_done",
            team_id=team_id,
            repos=len(repos),
            commits=result.commits,
            pull_requests=result.pull_requests,
        )
        return result

    async def run_all(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: GitHubClient,
    ) -> list[GitHubSyncResult]:
        """Sync every team, one transaction per team; failures are logged and skipped."""
        async with session_factory() as session:
            async with session.begin():
                team_ids = await self._team_service.list_ids(session)

        results: list[GitHubSyncResult] = []
        for team_id in team_ids:
            try:
                async with session_factory() as session:
                    async with session.begin():
                        results.append(await self.sync_team(session, team_id, client))
            except Exception as exc:
                log.error("github.sync_failed", team_id=team_id, error=str(exc))
        return results

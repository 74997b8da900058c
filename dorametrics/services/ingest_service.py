"""IngestService — idempotent writes into the event store (commits, PRs, deployments)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.dao.commit_dao import CommitDAO
from dorametrics.dao.deployment_dao import DeploymentDAO
from dorametrics.dao.pull_request_dao import PullRequestDAO
from dorametrics.models.deployment import DEPLOYMENT_STATUSES
from dorametrics.models.pull_request import PR_STATES
from dorametrics.services import ValidationError


class IngestService:
    """Stateless service used by the GitHub and CircleCI sync runners."""

    def __init__(
        self,
        commit_dao: CommitDAO,
        pull_request_dao: PullRequestDAO,
        deployment_dao: DeploymentDAO,
    ) -> None:
        self._commit_dao = commit_dao
        self._pr_dao = pull_request_dao
        self._deployment_dao = deployment_dao

    async def upsert_commit(
        self,
        session: AsyncSession,
        *,
        sha: str,
        repo_name: str,
        team_id: int,
        author: str,
        message: str,
        committed_at: datetime,
        pr_number: int | None = None,
    ) -> None:
        """Idempotent on ``sha``; re-ingestion refreshes message and PR link."""
        await self._commit_dao.upsert(
            session,
            {
                "sha": sha,
                "repo_name": repo_name,
                "team_id": team_id,
                "author": author,
                "message": message,
                "committed_at": committed_at,
                "pr_number": pr_number,
            },
        )

    async def upsert_pull_request(
        self,
        session: AsyncSession,
        *,
        repo_name: str,
        pr_number: int,
        team_id: int,
        title: str,
        author: str,
        state: str,
        created_at: datetime,
        merged_at: datetime | None = None,
        closed_at: datetime | None = None,
        first_commit_at: datetime | None = None,
        base_branch: str | None = None,
        head_branch: str | None = None,
        commits_count: int = 0,
    ) -> None:
        """Idempotent on ``(repo_name, pr_number)``.

        A present ``merged_at`` forces ``state='merged'`` and copies the PR
        timestamps onto its commits. A NULL ``first_commit_at`` never
        overwrites a stored one.
        """
        if merged_at is not None:
            state = "merged"
        if state not in PR_STATES:
            raise ValidationError(f"invalid pull request state: {state!r}")

        await self._pr_dao.upsert(
            session,
            {
                "repo_name": repo_name,
                "pr_number": pr_number,
                "team_id": team_id,
                "title": title,
                "author": author,
                "state": state,
                "created_at": created_at,
                "merged_at": merged_at,
                "closed_at": closed_at,
                "first_commit_at": first_commit_at,
                "base_branch": base_branch,
                "head_branch": head_branch,
                "commits_count": commits_count,
            },
        )

        if merged_at is not None:
            await self._commit_dao.link_pull_request(
                session,
                repo_name=repo_name,
                pr_number=pr_number,
                pr_created_at=created_at,
                pr_merged_at=merged_at,
            )

    async def upsert_deployment(
        self,
        session: AsyncSession,
        *,
        team_id: int,
        repo_name: str,
        commit_sha: str,
        branch: str | None,
        environment: str,
        status: str,
        deployed_at: datetime,
        duration_seconds: int | None = None,
        external_workflow_id: str | None = None,
    ) -> None:
        """Idempotent on ``(repo_name, commit_sha, deployed_at)``."""
        if status not in DEPLOYMENT_STATUSES:
            raise ValidationError(f"invalid deployment status: {status!r}")

        await self._deployment_dao.upsert(
            session,
            {
                "team_id": team_id,
                "repo_name": repo_name,
                "commit_sha": commit_sha,
                "branch": branch,
                "environment": environment,
                "status": status,
                "deployed_at": deployed_at,
                "duration_seconds": duration_seconds,
                "external_workflow_id": external_workflow_id,
            },
        )

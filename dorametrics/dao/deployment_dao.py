"""DeploymentDAO — deployments table operations and lead-time joins."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import Row, Select, and_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.dao.base import BaseDAO
from dorametrics.models.commit import Commit
from dorametrics.models.deployment import Deployment
from dorametrics.models.pull_request import PullRequest


class DeploymentDAO(BaseDAO[Deployment]):
    model = Deployment

    # ── read ──────────────────────────────────────────────────────────────

    @staticmethod
    def _in_window(
        query: Select,
        team_id: int,
        start: datetime,
        end: datetime,
        repos: Sequence[str] | None,
    ) -> Select:
        query = query.where(
            Deployment.team_id == team_id,
            Deployment.deployed_at >= start,
            Deployment.deployed_at < end,
        )
        if repos:
            query = query.where(Deployment.repo_name.in_(list(repos)))
        return query

    async def list_in_window(
        self,
        session: AsyncSession,
        team_id: int,
        start: datetime,
        end: datetime,
        repos: Sequence[str] | None = None,
    ) -> list[Row]:
        """Deployments of any status with ``start <= deployed_at < end``.

        Rows carry ``repo_name, status, deployed_at, duration_seconds``.
        """
        query = select(
            Deployment.repo_name,
            Deployment.status,
            Deployment.deployed_at,
            Deployment.duration_seconds,
        )
        query = self._in_window(query, team_id, start, end, repos).order_by(
            Deployment.deployed_at, Deployment.id
        )
        result = await session.execute(query)
        return list(result.all())

    async def list_lead_time_pairs(
        self,
        session: AsyncSession,
        team_id: int,
        start: datetime,
        end: datetime,
        repos: Sequence[str] | None = None,
    ) -> list[Row]:
        """(deployed_at, first_commit_at) for successful deployments in the window.

        Deployment → commit on (sha, repo), then → PR on (number, repo).
        Deployments whose chain does not reach a PR with a known first
        commit are left out.
        """
        query = (
            select(Deployment.deployed_at, PullRequest.first_commit_at)
            .join(
                Commit,
                and_(
                    Commit.sha == Deployment.commit_sha,
                    Commit.repo_name == Deployment.repo_name,
                ),
            )
            .outerjoin(
                PullRequest,
                and_(
                    PullRequest.pr_number == Commit.pr_number,
                    PullRequest.repo_name == Commit.repo_name,
                ),
            )
            .where(
                Deployment.status == "success",
                PullRequest.first_commit_at.is_not(None),
            )
        )
        query = self._in_window(query, team_id, start, end, repos).order_by(
            Deployment.deployed_at, Deployment.id
        )
        result = await session.execute(query)
        return list(result.all())

    # ── write ─────────────────────────────────────────────────────────────

    async def upsert(self, session: AsyncSession, values: dict[str, Any]) -> None:
        """Insert a deployment or refresh a re-run of the same one.

        ON CONFLICT (repo_name, commit_sha, deployed_at) only ``status``
        and ``duration_seconds`` change.
        """
        ins = insert(Deployment).values(**values)
        stmt = ins.on_conflict_do_update(
            constraint="uq_deployments_repo_sha_deployed",
            set_={
                "status": ins.excluded.status,
                "duration_seconds": ins.excluded.duration_seconds,
            },
        )
        await session.execute(stmt)

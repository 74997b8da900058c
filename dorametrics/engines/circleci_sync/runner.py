"""CircleCISyncRunner — orchestrates the collect engine + Service-layer DB writes."""

from __future__ import annotations

import os

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dorametrics.engines.circleci_sync.circleci_client import CircleCIClient
from dorametrics.engines.circleci_sync.collector import collect
from dorametrics.engines.circleci_sync.models import CircleCISyncResult
from dorametrics.services.ingest_service import IngestService
from dorametrics.services.team_service import TeamService

log = structlog.get_logger("dorametrics.engine")


class CircleCISyncRunner:
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
        """Organization slug; falls back to ``CIRCLECI_ORG`` at call time."""
        return self._org if self._org is not None else os.environ.get("CIRCLECI_ORG", "")

    async def sync_team(
        self,
        session: AsyncSession,
        team_id: int,
        client: CircleCIClient,
    ) -> CircleCISyncResult:
        """Pull deploy workflows for every repository of a team and upsert them.

        Projects are addressed as ``gh/{org}/{repo}``. Raises
        :class:`TeamNotFoundError` for an unknown team.
        """
        repos = await self._team_service.get_repos(session, team_id)
        result = CircleCISyncResult(team_id=team_id)

        for repo in repos:
            project_slug = f"gh/{self.org}/{repo}"
            result.projects.append(project_slug)
            log.info("circleci.sync_project", team_id=team_id, project=project_slug)

            scan = await collect(client, project_slug)
            for dep in scan.deployments:
                await self._ingest_service.upsert_deployment(
                    session,
                    team_id=team_id,
                    repo_name=dep.repo_name,
                    commit_sha=dep.commit_sha,
                    branch=dep.branch,
                    environment=dep.environment,
                    status=dep.status,
                    deployed_at=dep.deployed_at,
                    duration_seconds=dep.duration_seconds,
                    external_workflow_id=dep.external_workflow_id,
                )

            result.pipelines += scan.pipelines
            result.deployments += len(scan.deployments)
            result.skipped_pipelines.extend(scan.skipped_pipelines)

        log.info(
            "circleci.sync_done",
            team_id=team_id,
            projects=len(result.projects),
            pipelines=result.pipelines,
            deployments=result.deployments,
            skipped=len(result.skipped_pipelines),
        )
        return result

    async def run_all(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: CircleCIClient,
    ) -> list[CircleCISyncResult]:
        """Sync every team, one transaction per team; failures are logged and skipped."""
        async with session_factory() as session:
            async with session.begin():
                team_ids = await self._team_service.list_ids(session)

        results: list[CircleCISyncResult] = []
        for team_id in team_ids:
            try:
                async with session_factory() as session:
                    async with session.begin():
                        results.append(await self.sync_team(session, team_id, client))
            except Exception as exc:
                log.error("circleci.sync_failed", team_id=team_id, error=str(exc))
        return results

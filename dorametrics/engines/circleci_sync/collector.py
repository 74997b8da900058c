"""CircleCI sync engine — pipeline/workflow collection, no DB access."""

from __future__ import annotations

from datetime import datetime

import httpx
import structlog

from dorametrics.engines.circleci_sync.circleci_client import CircleCIClient
from dorametrics.engines.circleci_sync.models import CollectedDeployment, PipelineScan
from dorametrics.engines.github_sync.collector import parse_datetime

log = structlog.get_logger("dorametrics.engine")

DEPLOY_KEYWORDS = ("deploy", "release")


async def collect(
    client: CircleCIClient,
    project_slug: str,
    *,
    branch: str = "main",
) -> PipelineScan:
    """Turn the deploy/release workflows of a project's pipelines into deployments.

    Listing pipelines propagates HTTP errors; a failing workflow fetch for
    one pipeline is logged and that pipeline skipped.
    """
    repo_name = repo_from_slug(project_slug)
    scan = PipelineScan()

    async for pipeline in client.list_pipelines(project_slug, branch=branch):
        scan.pipelines += 1
        pipeline_id = pipeline["id"]
        try:
            workflows = await client.list_workflows(pipeline_id)
        except httpx.HTTPError as exc:
            log.error(
                "circleci.workflows_failed",
                project=project_slug,
                pipeline_id=pipeline_id,
                error=str(exc),
            )
            scan.skipped_pipelines.append(pipeline_id)
            continue

        for workflow in workflows:
            if not is_deploy_workflow(workflow.get("name") or ""):
                continue
            deployment = to_deployment(repo_name, pipeline, workflow)
            if deployment is not None:
                scan.deployments.append(deployment)

    return scan


def to_deployment(
    repo_name: str, pipeline: dict, workflow: dict
) -> CollectedDeployment | None:
    """Map one workflow; ``None`` when it lacks a revision or start time."""
    vcs = pipeline.get("vcs") or {}
    commit_sha = vcs.get("revision")
    created_at = parse_datetime(workflow.get("created_at"))
    if not commit_sha or created_at is None:
        log.warning(
            "circleci.workflow_incomplete",
            repo=repo_name,
            workflow_id=workflow.get("id"),
        )
        return None

    return CollectedDeployment(
        repo_name=repo_name,
        commit_sha=commit_sha,
        branch=vcs.get("branch"),
        environment=extract_environment(workflow.get("name") or ""),
        status=map_status(workflow.get("status")),
        deployed_at=created_at,
        duration_seconds=duration_seconds(created_at, parse_datetime(workflow.get("stopped_at"))),
        external_workflow_id=workflow.get("id"),
    )


# ── mapping rules ─────────────────────────────────────────────────────────


def is_deploy_workflow(name: str) -> bool:
    return any(keyword in name for keyword in DEPLOY_KEYWORDS)


def map_status(status: str | None) -> str:
    """success → success; failed/error → failed; anything else → running."""
    if status == "success":
        return "success"
    if status in ("failed", "error"):
        return "failed"
    return "running"


def extract_environment(workflow_name: str) -> str:
    name = workflow_name.lower()
    if "production" in name or "prod" in name:
        return "production"
    if "staging" in name:
        return "staging"
    if "dev" in name:
        return "development"
    return "production"


def duration_seconds(created_at: datetime | None, stopped_at: datetime | None) -> int | None:
    """Whole seconds between start and stop, ``None`` while still running."""
    if created_at is None or stopped_at is None:
        return None
    return int((stopped_at - created_at).total_seconds())


def repo_from_slug(project_slug: str) -> str:
    """``gh/org/repo`` → ``repo``."""
    return project_slug.rstrip("/").rsplit("/", 1)[-1]

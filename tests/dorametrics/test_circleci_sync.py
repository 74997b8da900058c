"""Tests for the CircleCI sync engine (no DB required)."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from dorametrics.engines.circleci_sync.circleci_client import CircleCIClient
from dorametrics.engines.circleci_sync.collector import (
    collect,
    duration_seconds,
    extract_environment,
    is_deploy_workflow,
    map_status,
    repo_from_slug,
    to_deployment,
)
from dorametrics.engines.circleci_sync.models import CollectedDeployment, PipelineScan
from dorametrics.engines.circleci_sync.runner import CircleCISyncRunner

UTC = timezone.utc
STARTED = datetime(2024, 3, 10, 10, 0, tzinfo=UTC)

# ── mapping rules ─────────────────────────────────────────────────────────


class TestMappingRules:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("deploy-production", "production"),
            ("deploy-prod", "production"),
            ("release-staging", "staging"),
            ("deploy-dev", "development"),
            ("build-and-deploy", "production"),
        ],
    )
    def test_extract_environment(self, name, expected):
        assert extract_environment(name) == expected

    @pytest.mark.parametrize(
        "status, expected",
        [
            ("success", "success"),
            ("failed", "failed"),
            ("error", "failed"),
            ("running", "running"),
            ("on_hold", "running"),
            (None, "running"),
        ],
    )
    def test_map_status(self, status, expected):
        assert map_status(status) == expected

    def test_is_deploy_workflow(self):
        assert is_deploy_workflow("deploy-production")
        assert is_deploy_workflow("nightly-release")
        assert not is_deploy_workflow("build-and-test")

    def test_is_deploy_workflow_is_case_sensitive(self):
        assert not is_deploy_workflow("Deploy-Production")

    def test_duration_seconds(self):
        stopped = datetime(2024, 3, 10, 10, 10, 30, 900000, tzinfo=UTC)
        assert duration_seconds(STARTED, stopped) == 630

    def test_duration_while_running(self):
        assert duration_seconds(STARTED, None) is None

    def test_repo_from_slug(self):
        assert repo_from_slug("gh/acme/api") == "api"
        assert repo_from_slug("gh/acme/api/") == "api"


# ── to_deployment ─────────────────────────────────────────────────────────


def _pipeline(pid: str = "p1", revision: str | None = "abc123") -> dict:
    return {"id": pid, "vcs": {"revision": revision, "branch": "main"}}


def _workflow(name: str = "deploy-production", status: str = "success", **fields) -> dict:
    workflow = {
        "id": f"wf-{name}",
        "name": name,
        "status": status,
        "created_at": "2024-03-10T10:00:00Z",
        "stopped_at": "2024-03-10T10:10:00Z",
    }
    workflow.update(fields)
    return workflow


class TestToDeployment:
    def test_maps_fields(self):
        dep = to_deployment("api", _pipeline(), _workflow())

        assert dep == CollectedDeployment(
            repo_name="api",
            commit_sha="abc123",
            branch="main",
            environment="production",
            status="success",
            deployed_at=STARTED,
            duration_seconds=600,
            external_workflow_id="wf-deploy-production",
        )

    def test_running_workflow_has_no_duration(self):
        dep = to_deployment("api", _pipeline(), _workflow(status="running", stopped_at=None))

        assert dep.status == "running"
        assert dep.duration_seconds is None

    def test_missing_revision(self):
        assert to_deployment("api", _pipeline(revision=None), _workflow()) is None

    def test_missing_created_at(self):
        assert to_deployment("api", _pipeline(), _workflow(created_at=None)) is None


# ── collect ───────────────────────────────────────────────────────────────


def _mock_client(pipelines: list[dict], workflows: dict[str, list[dict] | Exception]):
    client = AsyncMock(spec=CircleCIClient)

    async def _pipelines(slug, *, branch="main"):
        for pipeline in pipelines:
            yield pipeline

    async def _workflows(pipeline_id):
        result = workflows[pipeline_id]
        if isinstance(result, Exception):
            raise result
        return result

    client.list_pipelines = _pipelines
    client.list_workflows = AsyncMock(side_effect=_workflows)
    return client


class TestCollect:
    async def test_keeps_only_deploy_workflows(self):
        client = _mock_client(
            [_pipeline("p1")],
            {"p1": [_workflow("build-and-test"), _workflow("deploy-staging", "failed")]},
        )

        scan = await collect(client, "gh/acme/api")

        assert scan.pipelines == 1
        assert [(d.environment, d.status) for d in scan.deployments] == [("staging", "failed")]
        assert scan.deployments[0].repo_name == "api"

    async def test_failing_pipeline_is_skipped(self):
        client = _mock_client(
            [_pipeline("p1"), _pipeline("p2", "def456")],
            {
                "p1": httpx.ConnectError("down"),
                "p2": [_workflow("release-prod")],
            },
        )

        scan = await collect(client, "gh/acme/api")

        assert scan.pipelines == 2
        assert scan.skipped_pipelines == ["p1"]
        assert [d.commit_sha for d in scan.deployments] == ["def456"]

    async def test_no_pipelines(self):
        scan = await collect(_mock_client([], {}), "gh/acme/api")

        assert scan == PipelineScan()


# ── client ────────────────────────────────────────────────────────────────


class TestCircleCIClient:
    async def test_pipelines_send_branch_and_token(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": [{"id": "p1"}], "next_page_token": "t2"})

        async with CircleCIClient("tok", transport=httpx.MockTransport(handler)) as client:
            items = [p async for p in client.list_pipelines("gh/acme/api")]

        assert items == [{"id": "p1"}]
        assert len(seen) == 1
        assert seen[0].url.path == "/api/v2/project/gh/acme/api/pipeline"
        assert seen[0].url.params["branch"] == "main"
        assert seen[0].headers["Circle-Token"] == "tok"

    async def test_follows_page_token(self):
        pages = iter(
            [
                {"items": [{"id": "w1"}], "next_page_token": "next"},
                {"items": [{"id": "w2"}], "next_page_token": None},
            ]
        )
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=next(pages))

        async with CircleCIClient("tok", transport=httpx.MockTransport(handler)) as client:
            items = [i async for i in client.get_items("/pipeline/p1/workflow", max_pages=3)]

        assert [i["id"] for i in items] == ["w1", "w2"]
        assert seen[1].url.params["page-token"] == "next"

    async def test_retries_on_429(self):
        responses = iter(
            [httpx.Response(429), httpx.Response(200, json={"items": [{"id": "w1"}]})]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return next(responses)

        with patch("asyncio.sleep", new_callable=AsyncMock):
            async with CircleCIClient("tok", transport=httpx.MockTransport(handler)) as client:
                workflows = await client.list_workflows("p1")

        assert workflows == [{"id": "w1"}]

    async def test_not_found_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Project not found"})

        async with CircleCIClient("tok", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.list_workflows("p1")


# ── runner ────────────────────────────────────────────────────────────────


class TestCircleCISyncRunner:
    async def test_sync_team_upserts_each_deployment(self):
        team_service = MagicMock()
        team_service.get_repos = AsyncMock(return_value=["api", "web"])
        ingest = MagicMock()
        ingest.upsert_deployment = AsyncMock()
        runner = CircleCISyncRunner(team_service, ingest, org="acme")
        dep = CollectedDeployment("api", "abc", "main", "production", "success", STARTED, 600, "wf")

        scans = {
            "gh/acme/api": PipelineScan(deployments=[dep], pipelines=2, skipped_pipelines=["p9"]),
            "gh/acme/web": PipelineScan(pipelines=1),
        }

        async def _collect(_client, slug, **_kwargs):
            return scans[slug]

        with patch("dorametrics.engines.circleci_sync.runner.collect", side_effect=_collect):
            result = await runner.sync_team(AsyncMock(), 3, MagicMock())

        assert result.projects == ["gh/acme/api", "gh/acme/web"]
        assert result.pipelines == 3
        assert result.deployments == 1
        assert result.skipped_pipelines == ["p9"]
        kwargs = ingest.upsert_deployment.await_args.kwargs
        assert kwargs["team_id"] == 3
        assert kwargs["commit_sha"] == "abc"
        assert kwargs["duration_seconds"] == 600

    async def test_run_all_isolates_team_failures(self):
        team_service = MagicMock()
        team_service.list_ids = AsyncMock(return_value=[1, 2])
        runner = CircleCISyncRunner(team_service, MagicMock(), org="acme")

        session = MagicMock()
        tx = MagicMock()
        tx.__aenter__ = AsyncMock(return_value=tx)
        tx.__aexit__ = AsyncMock(return_value=False)
        session.begin = MagicMock(return_value=tx)
        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(return_value=session)
        ctx.__aexit__ = AsyncMock(return_value=False)
        factory = MagicMock(return_value=ctx)

        async def _sync(_session, team_id, _client):
            if team_id == 1:
                raise httpx.ConnectError("down")
            return team_id

        with patch.object(runner, "sync_team", side_effect=_sync):
            results = await runner.run_all(factory, MagicMock())

        assert results == [2]

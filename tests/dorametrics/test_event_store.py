"""DAO and aggregation tests against PostgreSQL (see conftest for setup)."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from dorametrics.dao.commit_dao import CommitDAO
from dorametrics.dao.deployment_dao import DeploymentDAO
from dorametrics.dao.dora_metric_dao import DoraMetricDAO
from dorametrics.dao.pull_request_dao import PullRequestDAO
from dorametrics.dao.team_dao import TeamDAO
from dorametrics.models.deployment import Deployment
from dorametrics.models.dora_metric import DoraMetric
from dorametrics.models.pull_request import PullRequest
from dorametrics.services.ingest_service import IngestService
from dorametrics.services.metrics_service import MetricsService

UTC = timezone.utc
DAY = date(2024, 3, 10)
DEPLOYED = datetime(2024, 3, 10, 10, 0, tzinfo=UTC)

team_dao = TeamDAO()
commit_dao = CommitDAO()
pr_dao = PullRequestDAO()
deployment_dao = DeploymentDAO()
metric_dao = DoraMetricDAO()
ingest = IngestService(commit_dao, pr_dao, deployment_dao)
metrics = MetricsService(team_dao, deployment_dao, metric_dao)


async def _team(session, repos=("api",)):
    return await team_dao.create(session, name="Platform", github_repos=list(repos))


async def _deploy(session, team_id, *, repo="api", sha="abc123", status="success",
                  at=DEPLOYED, duration=600):
    await ingest.upsert_deployment(
        session,
        team_id=team_id,
        repo_name=repo,
        commit_sha=sha,
        branch="main",
        environment="production",
        status=status,
        deployed_at=at,
        duration_seconds=duration,
        external_workflow_id=f"wf-{sha}",
    )


async def _merged_pr_chain(session, team_id, *, repo="api", sha="abc123", pr_number=42,
                           first_commit_at=DEPLOYED - timedelta(hours=24)):
    await ingest.upsert_commit(
        session,
        sha=sha,
        repo_name=repo,
        team_id=team_id,
        author="Dev",
        message=f"feat: ship it (#{pr_number})",
        committed_at=first_commit_at,
        pr_number=pr_number,
    )
    await ingest.upsert_pull_request(
        session,
        repo_name=repo,
        pr_number=pr_number,
        team_id=team_id,
        title="Ship it",
        author="dev",
        state="closed",
        created_at=first_commit_at,
        merged_at=DEPLOYED - timedelta(hours=1),
        first_commit_at=first_commit_at,
    )


class TestIngestUpserts:
    async def test_deployment_rerun_updates_status_only(self, session):
        team = await _team(session)
        await _deploy(session, team.id, status="running", duration=None)
        await ingest.upsert_deployment(
            session,
            team_id=team.id,
            repo_name="api",
            commit_sha="abc123",
            branch="other",
            environment="staging",
            status="success",
            deployed_at=DEPLOYED,
            duration_seconds=600,
        )

        rows = (await session.execute(select(Deployment))).scalars().all()
        assert len(rows) == 1
        assert rows[0].status == "success"
        assert rows[0].duration_seconds == 600
        assert rows[0].environment == "production"
        assert rows[0].branch == "main"

    async def test_pr_first_commit_kept_when_refetch_fails(self, session):
        team = await _team(session)
        first = DEPLOYED - timedelta(hours=30)
        await _merged_pr_chain(session, team.id, first_commit_at=first)

        await ingest.upsert_pull_request(
            session,
            repo_name="api",
            pr_number=42,
            team_id=team.id,
            title="Ship it (edited)",
            author="dev",
            state="closed",
            created_at=first,
            merged_at=DEPLOYED - timedelta(hours=1),
            first_commit_at=None,
        )

        pr = (await session.execute(select(PullRequest))).scalars().one()
        await session.refresh(pr)
        assert pr.title == "Ship it (edited)"
        assert pr.state == "merged"
        assert pr.first_commit_at == first

    async def test_merge_links_commits(self, session):
        team = await _team(session)
        await _merged_pr_chain(session, team.id)

        commit = (await session.execute(select(commit_dao.model))).scalars().one()
        await session.refresh(commit)
        assert commit.pr_number == 42
        assert commit.pr_merged_at == DEPLOYED - timedelta(hours=1)


class TestDailyAggregation:
    async def test_lead_time_scenario(self, session):
        team = await _team(session)
        await _merged_pr_chain(session, team.id)
        await _deploy(session, team.id)

        row = await metrics.compute_daily_metrics(session, team.id, DAY)

        assert row.deployment_count == 1
        assert row.lead_time_avg_hours == 24.0
        assert row.lead_time_median_hours == 24.0
        assert row.change_failure_rate == 0.0
        assert row.mttr_hours == pytest.approx(0.1667, abs=1e-4)

    async def test_unlinked_deployment_has_no_lead_time(self, session):
        team = await _team(session)
        await _deploy(session, team.id, sha="orphan")

        row = await metrics.compute_daily_metrics(session, team.id, DAY)

        assert row.deployment_count == 1
        assert row.lead_time_avg_hours == 0.0

    async def test_recompute_keeps_one_row_per_day(self, session):
        team = await _team(session)
        await _deploy(session, team.id, status="failed")
        await metrics.compute_daily_metrics(session, team.id, DAY)
        await _deploy(session, team.id, sha="def456", at=DEPLOYED + timedelta(hours=2))

        row = await metrics.compute_daily_metrics(session, team.id, DAY)

        count = await session.scalar(
            select(func.count()).select_from(DoraMetric).where(DoraMetric.team_id == team.id)
        )
        assert count == 1
        assert row.change_failure_rate == 50.0
        assert row.deployment_count == 1

    async def test_midnight_boundary(self, session):
        team = await _team(session)
        await _deploy(session, team.id, sha="late", at=datetime(2024, 3, 10, 23, 59, 59, tzinfo=UTC))
        await _deploy(session, team.id, sha="next", at=datetime(2024, 3, 11, 0, 0, tzinfo=UTC))

        row = await metrics.compute_daily_metrics(session, team.id, DAY)

        assert row.deployment_count == 1

    async def test_recompute_range_writes_every_day(self, session):
        team = await _team(session)

        result = await metrics.recompute_range(session, team.id, date(2024, 1, 1), date(2024, 1, 3))

        rows = await metric_dao.list_range(session, team.id, date(2024, 1, 1), date(2024, 1, 3))
        assert [r.date for r in rows] == result.computed
        assert len(rows) == 3


class TestRepoFilter:
    async def test_filtered_summary_counts_only_selected_repo(self, session):
        team = await _team(session, repos=("api", "web"))
        today = DAY
        await _deploy(session, team.id, repo="api", sha="a1")
        await _deploy(session, team.id, repo="web", sha="w1")
        await _deploy(session, team.id, repo="web", sha="w2", status="failed")

        summary = await metrics.get_summary(session, team.id, 30, ["api"], today=today)
        series = await metrics.get_historical(session, team.id, 30, ["web"], today=today)

        assert summary["deployment_count"] == 1
        assert summary["change_failure_rate"] == 0.0
        assert len(series) == 1
        assert series[0].change_failure_rate == 50.0

"""PullRequestDAO — pull_requests table operations."""

from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.dao.base import BaseDAO
from dorametrics.models.pull_request import PullRequest


class PullRequestDAO(BaseDAO[PullRequest]):
    model = PullRequest

    async def upsert(self, session: AsyncSession, values: dict[str, Any]) -> None:
        """Insert a PR or refresh its mutable fields.

        ON CONFLICT (repo_name, pr_number) refreshes state, timestamps,
        title and commit count. ``first_commit_at`` keeps its stored value
        when the incoming one is NULL.
        """
        ins = insert(PullRequest).values(**values)
        table = PullRequest.__table__
        stmt = ins.on_conflict_do_update(
            constraint="uq_pull_requests_repo_number",
            set_={
                "title": ins.excluded.title,
                "state": ins.excluded.state,
                "merged_at": ins.excluded.merged_at,
                "closed_at": ins.excluded.closed_at,
                "commits_count": ins.excluded.commits_count,
                "first_commit_at": func.coalesce(
                    ins.excluded.first_commit_at, table.c.first_commit_at
                ),
                "updated_at": func.now(),
            },
        )
        await session.execute(stmt)

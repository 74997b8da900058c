"""CommitDAO — commits table operations."""

from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.dao.base import BaseDAO
from dorametrics.models.commit import Commit


class CommitDAO(BaseDAO[Commit]):
    model = Commit

    async def upsert(self, session: AsyncSession, values: dict[str, Any]) -> None:
        """Insert a commit or refresh it on re-ingestion.

        ON CONFLICT (sha) updates only ``message`` and ``pr_number``.
        """
        ins = insert(Commit).values(**values)
        stmt = ins.on_conflict_do_update(
            index_elements=["sha"],
            set_={
                "message": ins.excluded.message,
                "pr_number": ins.excluded.pr_number,
            },
        )
        await session.execute(stmt)

    async def link_pull_request(
        self,
        session: AsyncSession,
        *,
        repo_name: str,
        pr_number: int,
        pr_created_at: datetime,
        pr_merged_at: datetime,
    ) -> int:
        """Copy a merged PR's timestamps onto its commits. Returns rows touched."""
        stmt = (
            update(Commit)
            .where(Commit.repo_name == repo_name, Commit.pr_number == pr_number)
            .values(pr_created_at=pr_created_at, pr_merged_at=pr_merged_at)
        )
        result = await session.execute(stmt)
        return result.rowcount

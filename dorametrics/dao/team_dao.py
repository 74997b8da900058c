"""TeamDAO — teams table operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.dao.base import BaseDAO
from dorametrics.models.team import Team


class TeamDAO(BaseDAO[Team]):
    model = Team

    # ── read ──────────────────────────────────────────────────────────────

    async def list_all(self, session: AsyncSession) -> list[Team]:
        """Return all teams ordered by name (API list)."""
        stmt = select(Team).order_by(Team.name, Team.id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list_ids(self, session: AsyncSession) -> list[int]:
        """Return every team id, ascending (scheduler fan-out)."""
        stmt = select(Team.id).order_by(Team.id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def get_repos(self, session: AsyncSession, team_id: int) -> list[str] | None:
        """Return the team's repositories, or None if the team does not exist."""
        stmt = select(Team.github_repos).where(Team.id == team_id)
        result = await session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        return list(row.github_repos or [])

"""TeamService — team CRUD and repository lookup."""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.dao.team_dao import TeamDAO
from dorametrics.models.team import Team
from dorametrics.services import TeamNotFoundError, ValidationError

log = structlog.get_logger("dorametrics.service")

DEFAULT_TEAM_NAME = "Default Team"


class TeamService:
    """Stateless service for teams."""

    def __init__(self, team_dao: TeamDAO) -> None:
        self._team_dao = team_dao

    async def get(self, session: AsyncSession, team_id: int) -> Team:
        """Raises :class:`TeamNotFoundError` if not found."""
        team = await self._team_dao.get_by_id(session, team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        return team

    async def list(self, session: AsyncSession) -> list[Team]:
        return await self._team_dao.list_all(session)

    async def list_ids(self, session: AsyncSession) -> list[int]:
        return await self._team_dao.list_ids(session)

    async def get_repos(self, session: AsyncSession, team_id: int) -> list[str]:
        """Return the team's repository names.

        Raises :class:`TeamNotFoundError` if the team does not exist.
        """
        repos = await self._team_dao.get_repos(session, team_id)
        if repos is None:
            raise TeamNotFoundError(team_id)
        return repos

    async def create(
        self,
        session: AsyncSession,
        *,
        name: str,
        description: str | None = None,
        github_repos: list[str] | None = None,
    ) -> Team:
        name = name.strip()
        if not name:
            raise ValidationError("team name must not be empty")
        return await self._team_dao.create(
            session,
            name=name,
            description=description,
            github_repos=_clean_repos(github_repos),
        )

    async def update(
        self,
        session: AsyncSession,
        team_id: int,
        *,
        name: str,
        description: str | None = None,
        github_repos: list[str] | None = None,
    ) -> Team:
        """Replace a team's fields. Raises :class:`TeamNotFoundError`."""
        name = name.strip()
        if not name:
            raise ValidationError("team name must not be empty")
        team = await self._team_dao.update(
            session,
            team_id,
            name=name,
            description=description,
            github_repos=_clean_repos(github_repos),
        )
        if team is None:
            raise TeamNotFoundError(team_id)
        return team

    async def delete(self, session: AsyncSession, team_id: int) -> None:
        """Delete a team and, by cascade, its events and metrics."""
        if not await self._team_dao.delete(session, team_id):
            raise TeamNotFoundError(team_id)

    async def ensure_default_team(self, session: AsyncSession) -> None:
        """Create a default team when the table is empty (first start)."""
        if await self._team_dao.count(session) > 0:
            return
        await self._team_dao.create(
            session,
            name=DEFAULT_TEAM_NAME,
            description="Default team for metrics tracking",
            github_repos=[],
        )
        log.info("team.default_created", name=DEFAULT_TEAM_NAME)


def _clean_repos(repos: list[str] | None) -> list[str]:
    """Strip blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for repo in repos or []:
        repo = repo.strip()
        if repo:
            seen.setdefault(repo, None)
    return list(seen)

"""Teams router — CRUD."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.api.deps import TEAM_ID_MAX, get_session, get_team_service
from dorametrics.api.schemas.common import MessageResponse
from dorametrics.api.schemas.team import TeamRequest, TeamResponse
from dorametrics.services.team_service import TeamService

router = APIRouter()


@router.get("", response_model=list[TeamResponse])
async def list_teams(
    session: AsyncSession = Depends(get_session),
    svc: TeamService = Depends(get_team_service),
) -> list[TeamResponse]:
    teams = await svc.list(session)
    return [TeamResponse.model_validate(t) for t in teams]


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    session: AsyncSession = Depends(get_session),
    svc: TeamService = Depends(get_team_service),
) -> TeamResponse:
    return TeamResponse.model_validate(await svc.get(session, team_id))


@router.post("", response_model=TeamResponse, status_code=201)
async def create_team(
    body: TeamRequest,
    session: AsyncSession = Depends(get_session),
    svc: TeamService = Depends(get_team_service),
) -> TeamResponse:
    team = await svc.create(
        session,
        name=body.name,
        description=body.description,
        github_repos=body.github_repos,
    )
    return TeamResponse.model_validate(team)


@router.put("/{team_id}", response_model=TeamResponse)
async def update_team(
    body: TeamRequest,
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    session: AsyncSession = Depends(get_session),
    svc: TeamService = Depends(get_team_service),
) -> TeamResponse:
    team = await svc.update(
        session,
        team_id,
        name=body.name,
        description=body.description,
        github_repos=body.github_repos,
    )
    return TeamResponse.model_validate(team)


@router.delete("/{team_id}", response_model=MessageResponse)
async def delete_team(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    session: AsyncSession = Depends(get_session),
    svc: TeamService = Depends(get_team_service),
) -> MessageResponse:
    await svc.delete(session, team_id)
    return MessageResponse(message="Team deleted successfully")

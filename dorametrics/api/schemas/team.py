"""Team request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator


class TeamRequest(BaseModel):
    """Body of both create (POST) and full replace (PUT)."""

    name: str
    description: str | None = None
    github_repos: list[str] = []

    @field_validator("name", mode="before")
    @classmethod
    def _strip_whitespace(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    github_repos: list[str]
    created_at: datetime
    updated_at: datetime

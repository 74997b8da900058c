"""Service layer — business logic orchestration."""


class ServiceError(Exception):
    """Base service exception."""


class NotFoundError(ServiceError):
    """Resource not found (-> HTTP 404)."""


class TeamNotFoundError(NotFoundError):
    """Summary, recompute or sync requested for an unknown team id."""

    def __init__(self, team_id: int) -> None:
        self.team_id = team_id
        super().__init__(f"Team {team_id} not found")


class ValidationError(ServiceError):
    """Input validation error (-> HTTP 422)."""

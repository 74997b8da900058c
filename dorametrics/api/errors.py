"""Unified error handling — ServiceError, DB failures, RequestValidationError → JSON."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from dorametrics.services import NotFoundError, ServiceError, ValidationError

log = structlog.get_logger("dorametrics.api")

_STATUS_MAP: dict[type[ServiceError], int] = {
    NotFoundError: 404,
    ValidationError: 422,
}


async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    status = 500
    for cls in type(exc).__mro__:
        if cls in _STATUS_MAP:
            status = _STATUS_MAP[cls]
            break
    return JSONResponse(status_code=status, content={"detail": str(exc)})


async def _database_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    log.error("db.query_failed", error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "event store unavailable"})


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    return JSONResponse(
        status_code=422,
        content={"detail": "; ".join(messages)},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the app."""
    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _database_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]

"""Shared response schemas."""

from __future__ import annotations

from pydantic import BaseModel


class MessageResponse(BaseModel):
    """Plain acknowledgement, e.g. ``{"message": "GitHub sync started"}``."""

    message: str

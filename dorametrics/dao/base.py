"""Generic base DAO for integer-keyed tables.

Event tables are written through dialect-specific upserts in their own
DAOs; this base only covers the plain row operations the team API needs.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.core.database import Base

ModelT = TypeVar("ModelT", bound=Base)

# Columns owned by the database, never written through update().
_READ_ONLY = frozenset({"id", "created_at", "updated_at"})


class BaseDAO(Generic[ModelT]):
    """Subclasses set ``model``. The session is always the first argument."""

    model: type[ModelT]

    def _check_writable(self, values: dict[str, Any]) -> None:
        columns = self.model.__mapper__.column_attrs.keys()
        for key in values:
            if key in _READ_ONLY:
                raise AttributeError(f"{self.model.__name__}.{key} is read-only")
            if key not in columns:
                raise AttributeError(f"{self.model.__name__} has no column '{key}'")

    async def get_by_id(self, session: AsyncSession, pk: int) -> ModelT | None:
        if pk is None:
            raise ValueError("pk must not be None")
        return await session.get(self.model, pk)

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        """Insert one row and return it with server defaults loaded."""
        self._check_writable(values)
        obj = self.model(**values)
        session.add(obj)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def update(self, session: AsyncSession, pk: int, **values: Any) -> ModelT | None:
        """Set *values* on row *pk*; None when the row does not exist."""
        self._check_writable(values)
        obj = await self.get_by_id(session, pk)
        if obj is None:
            return None
        for key, val in values.items():
            setattr(obj, key, val)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def delete(self, session: AsyncSession, pk: int) -> bool:
        obj = await self.get_by_id(session, pk)
        if obj is None:
            return False
        await session.delete(obj)
        await session.flush()
        return True

    async def count(self, session: AsyncSession, *where: ColumnElement[bool]) -> int:
        """Row count, optionally restricted by *where* clauses."""
        stmt = select(func.count()).select_from(self.model.__table__)
        if where:
            stmt = stmt.where(*where)
        return await session.scalar(stmt) or 0

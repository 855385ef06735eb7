from __future__ import annotations

from typing import Generic, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from src.models.base import RecordBase

ModelT = TypeVar("ModelT", bound=RecordBase)


class Repository(Generic[ModelT]):
    def __init__(self, session: AsyncSession, model: type[ModelT]) -> None:
        self.session = session
        self.model = model

    def _select(self) -> Select[tuple[ModelT]]:
        return select(self.model)

    async def create(self, **values: object) -> ModelT:
        instance = self.model(**values)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def get(self, entity_id: str, *, for_update: bool = False) -> ModelT | None:
        stmt = self._select().where(self.model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def update(self, entity_id: str, **values: object) -> ModelT | None:
        instance = await self.get(entity_id, for_update=True)
        if instance is None:
            return None

        for field, value in values.items():
            if field == "id":
                continue
            setattr(instance, field, value)

        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def delete(self, entity_id: str) -> bool:
        result = await self.session.execute(delete(self.model).where(self.model.id == entity_id))
        return (result.rowcount or 0) > 0

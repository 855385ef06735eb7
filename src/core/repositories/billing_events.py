from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.repositories.base import Repository
from src.models.base import new_id
from src.models.billing_event import BillingEventEntry


class BillingEventRepository(Repository[BillingEventEntry]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=BillingEventEntry)

    async def exists(self, event_id: str) -> bool:
        found = await self.session.scalar(
            select(BillingEventEntry.id).where(BillingEventEntry.event_id == event_id).limit(1)
        )
        return found is not None

    async def record(self, **values: object) -> bool:
        """Insert the ledger row; False when the event id was already recorded."""
        payload = dict(values)
        payload.setdefault("id", new_id())
        stmt = (
            insert(BillingEventEntry)
            .values(**payload)
            .on_conflict_do_nothing(index_elements=[BillingEventEntry.event_id])
            .returning(BillingEventEntry.id)
        )
        inserted = await self.session.scalar(stmt)
        return inserted is not None

    async def list_for_tenant(self, tenant_id: str, *, limit: int = 50) -> list[BillingEventEntry]:
        result = await self.session.execute(
            self._select()
            .where(BillingEventEntry.tenant_id == tenant_id)
            .order_by(BillingEventEntry.occurred_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

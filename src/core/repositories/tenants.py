from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.repositories.base import Repository
from src.models.tenant import Tenant


class TenantRepository(Repository[Tenant]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Tenant)

    async def _first(self, *criteria: object) -> Tenant | None:
        result = await self.session.execute(self._select().where(*criteria).limit(1))
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> Tenant | None:
        return await self._first(Tenant.username == username)

    async def get_by_custom_domain(self, domain: str) -> Tenant | None:
        return await self._first(Tenant.custom_domain == domain)

    async def get_by_customer_ref(self, customer_ref: str) -> Tenant | None:
        return await self._first(Tenant.billing_customer_ref == customer_ref)

    async def get_by_email(self, email: str) -> Tenant | None:
        return await self._first(func.lower(Tenant.email) == email.strip().lower())

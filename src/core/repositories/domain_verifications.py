from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.records import IN_FLIGHT_STATES, BindingState
from src.core.repositories.base import Repository
from src.models.domain_verification import DomainVerification

_IN_FLIGHT = [state.value for state in IN_FLIGHT_STATES]


class DomainVerificationRepository(Repository[DomainVerification]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=DomainVerification)

    async def get_in_flight_for_tenant(self, tenant_id: str) -> DomainVerification | None:
        result = await self.session.execute(
            self._select()
            .where(
                DomainVerification.tenant_id == tenant_id,
                DomainVerification.state.in_(_IN_FLIGHT),
            )
            .order_by(DomainVerification.requested_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_latest_for_domain(self, domain: str) -> DomainVerification | None:
        result = await self.session.execute(
            self._select()
            .where(DomainVerification.domain == domain)
            .order_by(DomainVerification.requested_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_pending(self, *, limit: int = 50) -> list[DomainVerification]:
        result = await self.session.execute(
            self._select()
            .where(DomainVerification.state == BindingState.PENDING_VERIFICATION.value)
            .order_by(DomainVerification.last_checked_at.asc().nulls_first())
            .limit(limit)
        )
        return list(result.scalars().all())

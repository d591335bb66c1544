"""Dispute repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.core.enums import DisputeStatusEnum
from marketplace.modules.disputes.models import Dispute


class DisputesRepository:
    """DB operations for disputes."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_dispute(
        self,
        booking_id: UUID,
        raised_by_user_id: UUID,
        reason: str,
        description: str | None,
    ) -> Dispute:
        dispute = Dispute(
            booking_id=booking_id,
            raised_by_user_id=raised_by_user_id,
            reason=reason,
            description=description,
            status=DisputeStatusEnum.OPEN,
        )
        self.session.add(dispute)
        await self.session.flush()
        return dispute

    async def get_dispute_by_id(self, dispute_id: UUID) -> Dispute | None:
        stmt = select(Dispute).options(selectinload(Dispute.booking)).where(Dispute.id == dispute_id)
        return await self.session.scalar(stmt)

    async def get_dispute_by_booking_id(self, booking_id: UUID) -> Dispute | None:
        return await self.session.scalar(select(Dispute).where(Dispute.booking_id == booking_id))

    async def list_disputes(
        self,
        status: DisputeStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Dispute], int]:
        base_stmt: Select[tuple[Dispute]] = select(Dispute)
        if status is not None:
            base_stmt = base_stmt.where(Dispute.status == status)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Dispute.created_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def save(self, dispute: Dispute) -> Dispute:
        await self.session.flush()
        return dispute

"""Booking repository layer."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.core.enums import BookingStatusEnum
from marketplace.modules.booking.models import Booking
from marketplace.modules.identity.session import Actor


class BookingRepository:
    """DB operations for booking domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_booking(
        self,
        customer_id: UUID,
        provider_id: UUID,
        service_id: UUID,
        booking_date: date,
        start_time: time,
        end_time: time,
        total_amount: Decimal,
        commission_amount: Decimal,
        provider_payout: Decimal,
        customer_address: str | None,
        customer_notes: str | None,
    ) -> Booking:
        booking = Booking(
            customer_id=customer_id,
            provider_id=provider_id,
            service_id=service_id,
            booking_date=booking_date,
            start_time=start_time,
            end_time=end_time,
            total_amount=total_amount,
            commission_amount=commission_amount,
            provider_payout=provider_payout,
            status=BookingStatusEnum.PENDING,
            customer_address=customer_address,
            customer_notes=customer_notes,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.dispute), selectinload(Booking.payment))
            .where(Booking.id == booking_id)
        )
        return await self.session.scalar(stmt)

    async def list_bookings(
        self,
        actor: Actor,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        base_stmt: Select[tuple[Booking]] = select(Booking)

        if not actor.is_admin:
            conditions = [Booking.customer_id == actor.id]
            if actor.is_provider and actor.provider_id is not None:
                conditions.append(Booking.provider_id == actor.provider_id)
            base_stmt = base_stmt.where(or_(*conditions))

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Booking.booking_date.desc(), Booking.start_time.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def find_due_confirmed(self, today: date, now_time: time) -> list[Booking]:
        """Confirmed bookings whose start time has been reached."""
        stmt = select(Booking).where(
            Booking.status == BookingStatusEnum.CONFIRMED,
            or_(
                Booking.booking_date < today,
                and_(Booking.booking_date == today, Booking.start_time <= now_time),
            ),
        )
        return (await self.session.scalars(stmt)).all()

    async def save(self, booking: Booking) -> Booking:
        await self.session.flush()
        return booking

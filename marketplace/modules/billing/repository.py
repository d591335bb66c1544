"""Billing repository layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.core.enums import PaymentStatusEnum
from marketplace.modules.billing.models import Payment
from marketplace.modules.booking.models import Booking


class BillingRepository:
    """DB access methods for billing."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_payment(
        self,
        booking_id: UUID,
        amount: Decimal,
        commission_amount: Decimal,
        payout_amount: Decimal,
        currency: str,
    ) -> Payment:
        payment = Payment(
            booking_id=booking_id,
            amount=amount,
            commission_amount=commission_amount,
            payout_amount=payout_amount,
            currency=currency,
            status=PaymentStatusEnum.PENDING,
        )
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def get_payment_by_id(self, payment_id: UUID) -> Payment | None:
        stmt = (
            select(Payment)
            .options(selectinload(Payment.booking).selectinload(Booking.dispute))
            .where(Payment.id == payment_id)
        )
        return await self.session.scalar(stmt)

    async def get_payment_by_booking_id(self, booking_id: UUID) -> Payment | None:
        stmt = (
            select(Payment)
            .options(selectinload(Payment.booking).selectinload(Booking.dispute))
            .where(Payment.booking_id == booking_id)
        )
        return await self.session.scalar(stmt)

    async def set_payment_status(
        self,
        payment: Payment,
        status: PaymentStatusEnum,
        *,
        paid_at: datetime | None = None,
        released_at: datetime | None = None,
    ) -> Payment:
        payment.status = status
        if paid_at is not None:
            payment.paid_at = paid_at
        if released_at is not None:
            payment.released_at = released_at
        await self.session.flush()
        return payment

    async def save(self, payment: Payment) -> Payment:
        await self.session.flush()
        return payment

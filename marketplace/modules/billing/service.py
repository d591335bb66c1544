"""Billing business logic layer."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import get_settings
from marketplace.core.database import get_db_session
from marketplace.core.enums import BookingStatusEnum, DisputeStatusEnum, PaymentStatusEnum
from marketplace.modules.billing.commission import CommissionBreakdown, calculate_commission
from marketplace.modules.billing.models import Payment
from marketplace.modules.billing.repository import BillingRepository
from marketplace.modules.billing.schemas import PaymentMarkPaid
from marketplace.modules.booking.access import ensure_booking_party, is_booking_customer
from marketplace.modules.identity.session import Actor
from marketplace.modules.providers.repository import ProvidersRepository
from marketplace.shared.exceptions import BusinessRuleException, NotFoundException, UnauthorizedException
from marketplace.shared.utils import utc_now

settings = get_settings()
logger = logging.getLogger(__name__)

ALLOWED_PAYMENT_TRANSITIONS: dict[PaymentStatusEnum, set[PaymentStatusEnum]] = {
    PaymentStatusEnum.PENDING: {PaymentStatusEnum.HELD, PaymentStatusEnum.FAILED},
    PaymentStatusEnum.FAILED: {PaymentStatusEnum.PENDING, PaymentStatusEnum.HELD},
    PaymentStatusEnum.HELD: {PaymentStatusEnum.RELEASED, PaymentStatusEnum.REFUNDED},
    PaymentStatusEnum.RELEASED: set(),
    PaymentStatusEnum.REFUNDED: set(),
}

SETTLED_DISPUTE_STATUSES = frozenset({DisputeStatusEnum.RESOLVED, DisputeStatusEnum.CLOSED})


def payout_release_blockers(booking: Any, dispute: Any | None) -> list[str]:
    """Reasons a payout cannot be released yet; empty when it can."""
    blockers: list[str] = []
    if booking.completed_at is None or booking.status not in (
        BookingStatusEnum.COMPLETED,
        BookingStatusEnum.DISPUTED,
    ):
        blockers.append("Booking has not been completed")
    if dispute is not None and dispute.status not in SETTLED_DISPUTE_STATUSES:
        blockers.append("Booking has an unresolved dispute")
    return blockers


class BillingService:
    """Payments mirror bookings and gate provider payouts."""

    def __init__(
        self,
        repository: BillingRepository,
        providers_repository: ProvidersRepository,
    ) -> None:
        self.repository = repository
        self.providers_repository = providers_repository

    async def create_payment_for_booking(self, booking: Any) -> Payment:
        """Open a pending payment with the booking's frozen amounts."""
        return await self.repository.create_payment(
            booking_id=booking.id,
            amount=booking.total_amount,
            commission_amount=booking.commission_amount,
            payout_amount=booking.provider_payout,
            currency=settings.currency,
        )

    async def _get_payment(self, payment_id: UUID) -> Payment:
        payment = await self.repository.get_payment_by_id(payment_id)
        if payment is None:
            raise NotFoundException("Payment not found")
        return payment

    async def get_payment_for_booking(self, booking_id: UUID, actor: Actor) -> Payment:
        payment = await self.repository.get_payment_by_booking_id(booking_id)
        if payment is None:
            raise NotFoundException("Payment not found")
        ensure_booking_party(payment.booking, actor)
        return payment

    async def _set_status(self, payment: Payment, status: PaymentStatusEnum, **timestamps) -> Payment:
        if status not in ALLOWED_PAYMENT_TRANSITIONS[payment.status]:
            raise BusinessRuleException(
                f"Invalid payment status transition: {payment.status} -> {status}",
            )
        previous_status = payment.status
        payment = await self.repository.set_payment_status(payment, status, **timestamps)
        logger.info("Payment %s moved %s -> %s", payment.id, previous_status, status)
        return payment

    async def mark_paid(self, payment_id: UUID, payload: PaymentMarkPaid, actor: Actor) -> Payment:
        """Customer money captured; the platform holds it until payout."""
        payment = await self._get_payment(payment_id)
        if not (actor.is_admin or is_booking_customer(payment.booking, actor)):
            raise UnauthorizedException("Only the customer or admin can pay for a booking")
        if payment.booking.status == BookingStatusEnum.CANCELLED:
            raise BusinessRuleException("Cannot pay for a cancelled booking")

        payment.payment_method = payload.payment_method
        payment.payment_reference = payload.payment_reference
        return await self._set_status(payment, PaymentStatusEnum.HELD, paid_at=utc_now())

    async def mark_failed(self, payment_id: UUID, actor: Actor) -> Payment:
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can fail payments")
        payment = await self._get_payment(payment_id)
        return await self._set_status(payment, PaymentStatusEnum.FAILED)

    async def release_payout(self, payment_id: UUID, actor: Actor) -> Payment:
        """Release held money to the provider once the booking is settled."""
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can release payouts")
        payment = await self._get_payment(payment_id)
        blockers = payout_release_blockers(payment.booking, payment.booking.dispute)
        if blockers:
            raise BusinessRuleException("; ".join(blockers))
        return await self._set_status(payment, PaymentStatusEnum.RELEASED, released_at=utc_now())

    async def refund(self, payment_id: UUID, actor: Actor) -> Payment:
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can refund payments")
        payment = await self._get_payment(payment_id)
        if payment.booking.status == BookingStatusEnum.COMPLETED and payment.booking.dispute is None:
            raise BusinessRuleException("Completed bookings without a dispute cannot be refunded")
        return await self._set_status(payment, PaymentStatusEnum.REFUNDED)

    async def refund_cancelled_booking(self, booking_id: UUID) -> Payment | None:
        """Return held money when a booking is cancelled before the service."""
        payment = await self.repository.get_payment_by_booking_id(booking_id)
        if payment is None or payment.status != PaymentStatusEnum.HELD:
            return payment
        return await self._set_status(payment, PaymentStatusEnum.REFUNDED)

    async def quote(self, price: Decimal, provider_id: UUID | None = None) -> CommissionBreakdown:
        """Commission split a customer would be charged for ``price``."""
        provider_rate = None
        if provider_id is not None:
            provider = await self.providers_repository.get_provider_by_id(provider_id)
            if provider is None:
                raise NotFoundException("Provider not found")
            provider_rate = provider.commission_rate
        return calculate_commission(price, provider_rate)


async def get_billing_service(session: AsyncSession = Depends(get_db_session)) -> BillingService:
    """Dependency provider for billing service."""
    return BillingService(
        repository=BillingRepository(session),
        providers_repository=ProvidersRepository(session),
    )

"""Booking business logic layer."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import get_settings
from marketplace.core.database import get_db_session
from marketplace.core.enums import (
    BookingStatusEnum,
    ChangeEventTypeEnum,
    RoleEnum,
    VerificationStatusEnum,
)
from marketplace.modules.billing.commission import calculate_commission
from marketplace.modules.billing.repository import BillingRepository
from marketplace.modules.billing.service import BillingService
from marketplace.modules.booking.access import (
    ensure_booking_party,
    ensure_booking_provider,
    is_booking_customer,
    is_booking_provider,
)
from marketplace.modules.booking.events import booking_change_event, booking_snapshot
from marketplace.modules.booking.models import Booking
from marketplace.modules.booking.repository import BookingRepository
from marketplace.modules.booking.schemas import BookingCancelRequest, BookingCreate, BookingNotesUpdate
from marketplace.modules.booking.state_machine import (
    TERMINAL_STATUSES,
    BookingEvent,
    TransitionResult,
    apply_transition,
)
from marketplace.modules.identity.session import Actor
from marketplace.modules.notifications.realtime import ChangePublisher, get_change_publisher
from marketplace.modules.providers.repository import ProvidersRepository
from marketplace.shared.exceptions import BusinessRuleException, NotFoundException, UnauthorizedException
from marketplace.shared.utils import combine_utc, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


class BookingService:
    """Booking domain service driving the lifecycle state machine."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        providers_repository: ProvidersRepository,
        billing_service: BillingService,
        publisher: ChangePublisher,
    ) -> None:
        self.booking_repository = booking_repository
        self.providers_repository = providers_repository
        self.billing_service = billing_service
        self.publisher = publisher

    async def _get_booking(self, booking_id: UUID) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    async def transition(
        self,
        booking: Any,
        event: BookingEvent,
        **changes: Any,
    ) -> TransitionResult:
        """Apply ``event``, store the booking and announce the change.

        ``changes`` are written only once the transition has been accepted.
        """
        before = booking_snapshot(booking)
        result = apply_transition(booking, event, now=utc_now())
        for field_name, value in changes.items():
            setattr(booking, field_name, value)
        await self.booking_repository.save(booking)
        await self.publisher.publish(
            booking_change_event(ChangeEventTypeEnum.UPDATE, booking, before),
        )
        logger.info(
            "Booking %s %s: %s -> %s",
            booking.id,
            event,
            result.previous_status,
            result.status,
        )
        return result

    async def create_booking(self, payload: BookingCreate, actor: Actor) -> Booking:
        """Create pending booking with commission and payout frozen on it."""
        if not actor.has_role(RoleEnum.CUSTOMER):
            raise UnauthorizedException("Only customers can book services")

        listing = await self.providers_repository.get_service_listing_by_id(payload.service_id)
        if listing is None or not listing.is_active:
            raise NotFoundException("Service not found")

        provider = listing.provider
        if provider.verification_status != VerificationStatusEnum.VERIFIED:
            raise BusinessRuleException("Provider is not verified")
        if provider.user_id == actor.id:
            raise BusinessRuleException("You cannot book your own service")

        now = utc_now()
        start_at = combine_utc(payload.booking_date, payload.start_time)
        if start_at <= now:
            raise BusinessRuleException("Cannot book a time in the past")
        if payload.booking_date > (now + timedelta(days=settings.booking_max_days_ahead)).date():
            raise BusinessRuleException(
                f"Bookings can be made at most {settings.booking_max_days_ahead} days ahead",
            )
        end_at = start_at + timedelta(minutes=listing.duration_minutes)
        if end_at.date() != start_at.date():
            raise BusinessRuleException("Service must finish on the day it starts")

        breakdown = calculate_commission(listing.price, provider.commission_rate)
        booking = await self.booking_repository.create_booking(
            customer_id=actor.id,
            provider_id=provider.id,
            service_id=listing.id,
            booking_date=payload.booking_date,
            start_time=payload.start_time,
            end_time=end_at.time(),
            total_amount=breakdown.price,
            commission_amount=breakdown.commission,
            provider_payout=breakdown.payout,
            customer_address=payload.customer_address,
            customer_notes=payload.customer_notes,
        )
        await self.billing_service.create_payment_for_booking(booking)

        provider.total_bookings += 1
        await self.providers_repository.save(provider)

        await self.publisher.publish(booking_change_event(ChangeEventTypeEnum.INSERT, booking))
        logger.info(
            "Booking %s created: total=%s commission=%s payout=%s",
            booking.id,
            breakdown.price,
            breakdown.commission,
            breakdown.payout,
        )
        return booking

    async def get_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        booking = await self._get_booking(booking_id)
        ensure_booking_party(booking, actor)
        return booking

    async def accept_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """Provider accepts a pending request."""
        booking = await self._get_booking(booking_id)
        ensure_booking_provider(booking, actor)
        await self.transition(booking, BookingEvent.ACCEPT)
        return booking

    async def start_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        booking = await self._get_booking(booking_id)
        ensure_booking_provider(booking, actor)
        await self.transition(booking, BookingEvent.START)
        return booking

    async def complete_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """Provider marks the job done; the payout becomes releasable."""
        booking = await self._get_booking(booking_id)
        ensure_booking_provider(booking, actor)
        await self.transition(booking, BookingEvent.COMPLETE)
        return booking

    async def cancel_booking(
        self,
        booking_id: UUID,
        payload: BookingCancelRequest,
        actor: Actor,
    ) -> Booking:
        """Cancel before the service starts and refund any captured money."""
        booking = await self._get_booking(booking_id)
        ensure_booking_party(booking, actor)
        await self.transition(booking, BookingEvent.CANCEL, cancellation_reason=payload.reason)
        await self.billing_service.refund_cancelled_booking(booking.id)
        return booking

    async def update_notes(
        self,
        booking_id: UUID,
        payload: BookingNotesUpdate,
        actor: Actor,
    ) -> Booking:
        booking = await self._get_booking(booking_id)
        ensure_booking_party(booking, actor)

        customer_fields = payload.customer_address is not None or payload.customer_notes is not None
        if customer_fields:
            if not (actor.is_admin or is_booking_customer(booking, actor)):
                raise UnauthorizedException("Only the customer can change address or notes")
            if booking.status != BookingStatusEnum.PENDING:
                raise BusinessRuleException("Address and notes can only change while pending")
        if payload.provider_notes is not None:
            if not (actor.is_admin or is_booking_provider(booking, actor)):
                raise UnauthorizedException("Only the provider can change provider notes")
            if booking.status in TERMINAL_STATUSES:
                raise BusinessRuleException("Booking is closed")

        before = booking_snapshot(booking)
        for field_name, value in payload.model_dump(exclude_none=True).items():
            setattr(booking, field_name, value)
        booking.updated_at = utc_now()
        await self.booking_repository.save(booking)
        await self.publisher.publish(
            booking_change_event(ChangeEventTypeEnum.UPDATE, booking, before),
        )
        return booking

    async def list_bookings(
        self,
        actor: Actor,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        """List bookings the actor is a party to (all for admin)."""
        return await self.booking_repository.list_bookings(actor, limit, offset)

    async def start_due_bookings(self, now: datetime | None = None) -> int:
        """Move confirmed bookings whose start time has passed to in_progress."""
        now = now or utc_now()
        due = await self.booking_repository.find_due_confirmed(now.date(), now.time())
        for booking in due:
            await self.transition(booking, BookingEvent.START)
        return len(due)


def build_booking_service(session: AsyncSession, publisher: ChangePublisher) -> BookingService:
    providers_repository = ProvidersRepository(session)
    return BookingService(
        booking_repository=BookingRepository(session),
        providers_repository=providers_repository,
        billing_service=BillingService(BillingRepository(session), providers_repository),
        publisher=publisher,
    )


async def get_booking_service(
    session: AsyncSession = Depends(get_db_session),
    publisher: ChangePublisher = Depends(get_change_publisher),
) -> BookingService:
    """Dependency provider for booking service."""
    return build_booking_service(session, publisher)

"""Dispute business logic layer."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.database import get_db_session
from marketplace.core.enums import DisputeStatusEnum
from marketplace.modules.booking.access import (
    ensure_booking_party,
    is_booking_customer,
    is_booking_provider,
)
from marketplace.modules.booking.service import BookingService, build_booking_service
from marketplace.modules.booking.state_machine import BookingEvent
from marketplace.modules.disputes.models import Dispute
from marketplace.modules.disputes.repository import DisputesRepository
from marketplace.modules.disputes.schemas import DisputeCreate, DisputeStatusUpdate
from marketplace.modules.identity.session import Actor
from marketplace.modules.notifications.realtime import ChangePublisher, get_change_publisher
from marketplace.shared.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    UnauthorizedException,
)
from marketplace.shared.utils import utc_now

logger = logging.getLogger(__name__)

ALLOWED_DISPUTE_TRANSITIONS: dict[DisputeStatusEnum, set[DisputeStatusEnum]] = {
    DisputeStatusEnum.OPEN: {
        DisputeStatusEnum.INVESTIGATING,
        DisputeStatusEnum.RESOLVED,
        DisputeStatusEnum.CLOSED,
    },
    DisputeStatusEnum.INVESTIGATING: {DisputeStatusEnum.RESOLVED, DisputeStatusEnum.CLOSED},
    DisputeStatusEnum.RESOLVED: {DisputeStatusEnum.CLOSED},
    DisputeStatusEnum.CLOSED: set(),
}


class DisputesService:
    """Raising disputes and moderating them to a resolution."""

    def __init__(
        self,
        repository: DisputesRepository,
        booking_service: BookingService,
    ) -> None:
        self.repository = repository
        self.booking_service = booking_service

    async def raise_dispute(self, payload: DisputeCreate, actor: Actor) -> Dispute:
        """Move the booking to disputed and open its dispute record."""
        booking = await self.booking_service.get_booking(payload.booking_id, actor)
        if not (is_booking_customer(booking, actor) or is_booking_provider(booking, actor)):
            raise UnauthorizedException("Only the customer or provider can raise a dispute")

        existing = await self.repository.get_dispute_by_booking_id(booking.id)
        if existing is not None:
            raise ConflictException("Booking already has a dispute")

        await self.booking_service.transition(booking, BookingEvent.DISPUTE)
        dispute = await self.repository.create_dispute(
            booking_id=booking.id,
            raised_by_user_id=actor.id,
            reason=payload.reason,
            description=payload.description,
        )
        logger.warning("Dispute %s raised on booking %s by %s", dispute.id, booking.id, actor.id)
        return dispute

    async def get_dispute(self, dispute_id: UUID, actor: Actor) -> Dispute:
        dispute = await self.repository.get_dispute_by_id(dispute_id)
        if dispute is None:
            raise NotFoundException("Dispute not found")
        ensure_booking_party(dispute.booking, actor)
        return dispute

    async def list_disputes(
        self,
        actor: Actor,
        status: DisputeStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Dispute], int]:
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can list disputes")
        return await self.repository.list_disputes(status, limit, offset)

    async def update_status(
        self,
        dispute_id: UUID,
        payload: DisputeStatusUpdate,
        actor: Actor,
    ) -> Dispute:
        """Advance moderation; resolving requires a written resolution."""
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can moderate disputes")

        dispute = await self.repository.get_dispute_by_id(dispute_id)
        if dispute is None:
            raise NotFoundException("Dispute not found")

        if payload.status == dispute.status:
            return dispute
        if payload.status not in ALLOWED_DISPUTE_TRANSITIONS[dispute.status]:
            raise BusinessRuleException(
                f"Invalid dispute status transition: {dispute.status} -> {payload.status}",
            )

        resolution = payload.resolution if payload.resolution is not None else dispute.resolution
        if payload.status == DisputeStatusEnum.RESOLVED and not resolution:
            raise BusinessRuleException("Resolution text is required to resolve a dispute")

        previous_status = dispute.status
        dispute.status = payload.status
        dispute.resolution = resolution
        if payload.admin_notes is not None:
            dispute.admin_notes = payload.admin_notes
        if payload.status in (DisputeStatusEnum.RESOLVED, DisputeStatusEnum.CLOSED) and dispute.resolved_at is None:
            dispute.resolved_at = utc_now()
        await self.repository.save(dispute)

        logger.info("Dispute %s moved %s -> %s by %s", dispute.id, previous_status, dispute.status, actor.id)
        return dispute


async def get_disputes_service(
    session: AsyncSession = Depends(get_db_session),
    publisher: ChangePublisher = Depends(get_change_publisher),
) -> DisputesService:
    """Dependency provider for disputes service."""
    return DisputesService(
        repository=DisputesRepository(session),
        booking_service=build_booking_service(session, publisher),
    )

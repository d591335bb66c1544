"""Booking API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from marketplace.modules.booking.schemas import (
    BookingCancelRequest,
    BookingCreate,
    BookingNotesUpdate,
    BookingRead,
)
from marketplace.modules.booking.service import BookingService, get_booking_service
from marketplace.modules.identity.session import Actor, get_current_actor
from marketplace.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Submit a booking request in PENDING state."""
    booking = await service.create_booking(payload, actor)
    return BookingRead.model_validate(booking)


@router.get("/my", response_model=Page[BookingRead])
async def list_my_bookings(
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor),
) -> Page[BookingRead]:
    """List bookings for current user."""
    items, total = await service.list_bookings(actor, pagination.limit, pagination.offset)
    serialized = [BookingRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    booking = await service.get_booking(booking_id, actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/accept", response_model=BookingRead)
async def accept_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Provider accepts a pending booking."""
    booking = await service.accept_booking(booking_id, actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/start", response_model=BookingRead)
async def start_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Provider marks the service as started."""
    booking = await service.start_booking(booking_id, actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingRead)
async def complete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Provider marks the service as done."""
    booking = await service.complete_booking(booking_id, actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: UUID,
    payload: BookingCancelRequest,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Cancel booking and refund held payment."""
    booking = await service.cancel_booking(booking_id, payload, actor)
    return BookingRead.model_validate(booking)


@router.patch("/{booking_id}/notes", response_model=BookingRead)
async def update_booking_notes(
    booking_id: UUID,
    payload: BookingNotesUpdate,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    booking = await service.update_notes(booking_id, payload, actor)
    return BookingRead.model_validate(booking)

"""Booking lifecycle: statuses, allowed transitions and their side effects.

::

    pending ──accept──▶ confirmed ──start──▶ in_progress ──complete──▶ completed
       │                   │                      │                       │
       └──cancel──▶ cancelled ◀──cancel──┘        └──dispute──▶ disputed ◀─┘

``completed`` and ``cancelled`` are terminal for the booking status, and so is
``disputed``; a dispute continues on its own record.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from marketplace.core.enums import BookingStatusEnum
from marketplace.core.metrics import BOOKING_TRANSITIONS_TOTAL
from marketplace.shared.exceptions import InvalidTransitionException


class BookingEvent(StrEnum):
    """Actions that move a booking between statuses."""

    ACCEPT = "accept"
    CANCEL = "cancel"
    START = "start"
    COMPLETE = "complete"
    DISPUTE = "dispute"


class SideEffect(StrEnum):
    """Follow-up work owed once a transition has been stored."""

    NOTIFY_CUSTOMER = "notify_customer"
    NOTIFY_COUNTERPART = "notify_counterpart"
    NOTIFY_ADMIN = "notify_admin"
    PAYOUT_ELIGIBLE = "payout_eligible"
    PAYOUT_BLOCKED = "payout_blocked"


TRANSITIONS: dict[tuple[BookingStatusEnum, BookingEvent], BookingStatusEnum] = {
    (BookingStatusEnum.PENDING, BookingEvent.ACCEPT): BookingStatusEnum.CONFIRMED,
    (BookingStatusEnum.PENDING, BookingEvent.CANCEL): BookingStatusEnum.CANCELLED,
    (BookingStatusEnum.CONFIRMED, BookingEvent.CANCEL): BookingStatusEnum.CANCELLED,
    (BookingStatusEnum.CONFIRMED, BookingEvent.START): BookingStatusEnum.IN_PROGRESS,
    (BookingStatusEnum.IN_PROGRESS, BookingEvent.COMPLETE): BookingStatusEnum.COMPLETED,
    (BookingStatusEnum.IN_PROGRESS, BookingEvent.DISPUTE): BookingStatusEnum.DISPUTED,
    (BookingStatusEnum.COMPLETED, BookingEvent.DISPUTE): BookingStatusEnum.DISPUTED,
}

SIDE_EFFECTS: dict[BookingEvent, tuple[SideEffect, ...]] = {
    BookingEvent.ACCEPT: (SideEffect.NOTIFY_CUSTOMER,),
    BookingEvent.CANCEL: (SideEffect.NOTIFY_COUNTERPART,),
    BookingEvent.START: (SideEffect.NOTIFY_CUSTOMER,),
    BookingEvent.COMPLETE: (SideEffect.NOTIFY_CUSTOMER, SideEffect.PAYOUT_ELIGIBLE),
    BookingEvent.DISPUTE: (
        SideEffect.NOTIFY_ADMIN,
        SideEffect.NOTIFY_COUNTERPART,
        SideEffect.PAYOUT_BLOCKED,
    ),
}

TERMINAL_STATUSES = frozenset(
    {BookingStatusEnum.COMPLETED, BookingStatusEnum.CANCELLED, BookingStatusEnum.DISPUTED},
)

# lifecycle timestamp written when a status is entered
_TIMESTAMP_FIELDS: dict[BookingStatusEnum, str] = {
    BookingStatusEnum.CONFIRMED: "confirmed_at",
    BookingStatusEnum.IN_PROGRESS: "started_at",
    BookingStatusEnum.COMPLETED: "completed_at",
    BookingStatusEnum.CANCELLED: "cancelled_at",
}


class StatefulBooking(Protocol):
    status: BookingStatusEnum
    updated_at: datetime


@dataclass(frozen=True, slots=True)
class TransitionResult:
    previous_status: BookingStatusEnum
    status: BookingStatusEnum
    event: BookingEvent
    side_effects: tuple[SideEffect, ...]


def allowed_events(status: BookingStatusEnum) -> list[BookingEvent]:
    """Events that may be applied to a booking in ``status``."""
    return [event for (source, event) in TRANSITIONS if source == status]


def next_status(status: BookingStatusEnum, event: BookingEvent) -> BookingStatusEnum:
    """Return target status or raise if ``event`` is not allowed from ``status``."""
    target = TRANSITIONS.get((status, event))
    if target is None:
        raise InvalidTransitionException(str(status), str(event))
    return target


def apply_transition(
    booking: StatefulBooking,
    event: BookingEvent,
    *,
    now: datetime,
) -> TransitionResult:
    """Move ``booking`` to the status ``event`` leads to.

    The record is only written after the transition has been validated, so a
    rejected event leaves every attribute as it was.
    """
    previous = BookingStatusEnum(booking.status)
    target = next_status(previous, event)

    booking.status = target
    booking.updated_at = now
    timestamp_field = _TIMESTAMP_FIELDS.get(target)
    if timestamp_field is not None and hasattr(booking, timestamp_field):
        setattr(booking, timestamp_field, now)

    BOOKING_TRANSITIONS_TOTAL.labels(from_status=str(previous), to_status=str(target)).inc()
    return TransitionResult(
        previous_status=previous,
        status=target,
        event=event,
        side_effects=SIDE_EFFECTS[event],
    )

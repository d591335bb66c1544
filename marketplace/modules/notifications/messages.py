"""User-facing wording for booking status notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import assert_never

from marketplace.core.enums import BookingStatusEnum


@dataclass(frozen=True, slots=True)
class StatusMessage:
    title: str
    description: str
    variant: str = "default"


def coerce_status(raw: object) -> BookingStatusEnum | None:
    """Parse a raw status value from a change payload; unknown values become None."""
    if isinstance(raw, BookingStatusEnum):
        return raw
    if raw is None:
        return None
    try:
        return BookingStatusEnum(str(raw))
    except ValueError:
        return None


def status_message(status: BookingStatusEnum | None, *, is_provider: bool) -> StatusMessage:
    """Title/description pair for a status, worded for provider or customer.

    A missing status is reported with the ``pending`` wording.
    """
    match status or BookingStatusEnum.PENDING:
        case BookingStatusEnum.PENDING:
            if is_provider:
                return StatusMessage("New Booking Request", "You have a new booking request to review.")
            return StatusMessage("Booking Submitted", "Your booking has been submitted successfully.")
        case BookingStatusEnum.CONFIRMED:
            if is_provider:
                return StatusMessage("Booking Confirmed", "You have confirmed a booking.")
            return StatusMessage("Booking Confirmed", "Great news! Your booking has been confirmed.")
        case BookingStatusEnum.IN_PROGRESS:
            if is_provider:
                return StatusMessage("Service In Progress", "The service has started.")
            return StatusMessage("Service In Progress", "Your service is now in progress.")
        case BookingStatusEnum.COMPLETED:
            if is_provider:
                return StatusMessage("Service Completed", "You have completed a service.")
            return StatusMessage(
                "Service Completed",
                "Your service has been completed. Please leave a review!",
            )
        case BookingStatusEnum.CANCELLED:
            if is_provider:
                return StatusMessage("Booking Cancelled", "A booking has been cancelled.", "destructive")
            return StatusMessage("Booking Cancelled", "Your booking has been cancelled.", "destructive")
        case BookingStatusEnum.DISPUTED:
            return StatusMessage(
                "Dispute Raised",
                "A dispute has been raised for this booking.",
                "destructive",
            )
        case unreachable:
            assert_never(unreachable)

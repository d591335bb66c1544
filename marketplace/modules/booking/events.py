"""Change events announcing booking writes."""

from __future__ import annotations

from typing import Any

from marketplace.core.enums import ChangeEventTypeEnum
from marketplace.modules.booking.schemas import BookingRead
from marketplace.modules.notifications.realtime import BOOKINGS_TABLE, ChangeEvent

# Columns carried by change events; the bookings trigger sends the same set.
# NOTIFY payloads are capped at 8000 bytes, so free-text columns stay out.
CHANGE_RECORD_FIELDS = ("id", "customer_id", "provider_id", "service_id", "status", "updated_at")


def booking_snapshot(booking: Any) -> dict[str, Any]:
    """JSON-friendly row image, shaped like the trigger's change record."""
    return BookingRead.model_validate(booking).model_dump(mode="json", include=set(CHANGE_RECORD_FIELDS))


def booking_change_event(
    event_type: ChangeEventTypeEnum,
    booking: Any,
    before: dict[str, Any] | None = None,
) -> ChangeEvent:
    return ChangeEvent(
        table=BOOKINGS_TABLE,
        event_type=event_type,
        new=booking_snapshot(booking),
        old=before,
    )

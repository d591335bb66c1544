"""Who may act on a booking."""

from __future__ import annotations

from typing import Any

from marketplace.modules.identity.session import Actor
from marketplace.shared.exceptions import UnauthorizedException


def is_booking_customer(booking: Any, actor: Actor) -> bool:
    return booking.customer_id is not None and booking.customer_id == actor.id


def is_booking_provider(booking: Any, actor: Actor) -> bool:
    return (
        actor.is_provider
        and actor.provider_id is not None
        and booking.provider_id == actor.provider_id
    )


def ensure_booking_party(booking: Any, actor: Actor) -> None:
    """Customer, provider of the booking or an admin."""
    if actor.is_admin or is_booking_customer(booking, actor) or is_booking_provider(booking, actor):
        return
    raise UnauthorizedException("You cannot manage this booking")


def ensure_booking_provider(booking: Any, actor: Actor) -> None:
    """Provider of the booking or an admin."""
    if actor.is_admin or is_booking_provider(booking, actor):
        return
    raise UnauthorizedException("Only the booked provider can do this")

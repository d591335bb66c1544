"""Booking schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.core.enums import BookingStatusEnum


class BookingCreate(BaseModel):
    """Customer booking request for one service listing."""

    service_id: UUID
    booking_date: date
    start_time: time
    customer_address: str = Field(min_length=3, max_length=512)
    customer_notes: str | None = Field(default=None, max_length=2000)


class BookingCancelRequest(BaseModel):
    """Cancel booking request."""

    reason: str | None = Field(default=None, max_length=512)


class BookingNotesUpdate(BaseModel):
    """Free-text fields a party may edit after booking."""

    customer_address: str | None = Field(default=None, min_length=3, max_length=512)
    customer_notes: str | None = Field(default=None, max_length=2000)
    provider_notes: str | None = Field(default=None, max_length=2000)


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID | None
    provider_id: UUID | None
    service_id: UUID | None
    booking_date: date
    start_time: time
    end_time: time
    total_amount: Decimal
    commission_amount: Decimal
    provider_payout: Decimal
    status: BookingStatusEnum
    customer_address: str | None
    customer_notes: str | None
    provider_notes: str | None
    confirmed_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime

"""Billing schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.core.enums import PaymentStatusEnum


class PaymentMarkPaid(BaseModel):
    """Record that the customer's money was captured."""

    payment_method: str | None = Field(default=None, max_length=64)
    payment_reference: str | None = Field(default=None, max_length=128)


class PaymentRead(BaseModel):
    """Payment response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    amount: Decimal
    commission_amount: Decimal
    payout_amount: Decimal
    currency: str
    status: PaymentStatusEnum
    payment_method: str | None
    payment_reference: str | None
    paid_at: datetime | None
    released_at: datetime | None
    created_at: datetime
    updated_at: datetime


class CommissionQuoteRead(BaseModel):
    """Commission split for a listed price."""

    price: Decimal
    commission_rate: Decimal
    commission: Decimal
    payout: Decimal
    currency: str

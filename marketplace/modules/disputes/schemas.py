"""Dispute schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.core.enums import DisputeStatusEnum


class DisputeCreate(BaseModel):
    """Flag a booking as disputed."""

    booking_id: UUID
    reason: str = Field(min_length=3, max_length=255)
    description: str | None = Field(default=None, max_length=4000)


class DisputeStatusUpdate(BaseModel):
    """Admin moderation step."""

    status: DisputeStatusEnum
    resolution: str | None = Field(default=None, max_length=4000)
    admin_notes: str | None = Field(default=None, max_length=4000)


class DisputeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    raised_by_user_id: UUID | None
    reason: str
    description: str | None
    status: DisputeStatusEnum
    resolution: str | None
    admin_notes: str | None
    resolved_at: datetime | None
    created_at: datetime
    updated_at: datetime

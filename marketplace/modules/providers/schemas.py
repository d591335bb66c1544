"""Provider, catalogue and review schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.core.enums import VerificationStatusEnum


class ProviderApply(BaseModel):
    """Become-a-provider application."""

    business_name: str = Field(min_length=2, max_length=255)
    city: str = Field(min_length=2, max_length=128)
    suburb: str | None = Field(default=None, max_length=128)
    bio: str | None = Field(default=None, max_length=2000)
    service_radius_km: int | None = Field(default=None, ge=1, le=500)


class ProviderVerificationUpdate(BaseModel):
    status: VerificationStatusEnum


class ProviderFeaturedUpdate(BaseModel):
    is_featured: bool


class ProviderCommissionUpdate(BaseModel):
    """Provider-specific commission override; ``None`` restores the platform rate."""

    commission_rate: Decimal | None = None


class ProviderRead(BaseModel):
    """Provider response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    business_name: str
    city: str
    suburb: str | None
    bio: str | None
    service_radius_km: int | None
    verification_status: VerificationStatusEnum
    is_featured: bool
    commission_rate: Decimal | None
    total_bookings: int
    total_reviews: int
    average_rating: Decimal
    created_at: datetime
    updated_at: datetime


class ServiceListingCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    duration_minutes: int = Field(default=60, ge=15, le=24 * 60)
    category_id: UUID | None = None


class ServiceListingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_id: UUID
    category_id: UUID | None
    name: str
    description: str | None
    price: Decimal
    duration_minutes: int
    is_active: bool


class ReviewCreate(BaseModel):
    booking_id: UUID
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=2000)


class ReviewRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    customer_id: UUID | None
    provider_id: UUID | None
    rating: int
    comment: str | None
    is_visible: bool
    created_at: datetime

"""Provider, catalogue and review ORM models."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.core.database import Base, BaseModelMixin, CreatedAtMixin, UUIDMixin, enum_values
from marketplace.core.enums import VerificationStatusEnum

if TYPE_CHECKING:
    from marketplace.modules.booking.models import Booking


class Provider(BaseModelMixin, Base):
    """Business profile of a service provider."""

    __tablename__ = "providers"
    __table_args__ = (
        CheckConstraint(
            "commission_rate IS NULL OR (commission_rate >= 0 AND commission_rate < 1)",
            name="commission_rate_fraction",
        ),
    )

    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, unique=True)
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    suburb: Mapped[str | None] = mapped_column(String(128), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_radius_km: Mapped[int | None] = mapped_column(Integer, nullable=True)

    verification_status: Mapped[VerificationStatusEnum] = mapped_column(
        SAEnum(VerificationStatusEnum, name="verification_status", native_enum=False, values_callable=enum_values),
        default=VerificationStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    commission_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 4), nullable=True)

    total_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    average_rating: Mapped[Decimal] = mapped_column(Numeric(3, 2), default=Decimal("0"), nullable=False)

    services: Mapped[list[ServiceListing]] = relationship(
        back_populates="provider",
        cascade="all, delete-orphan",
    )
    bookings: Mapped[list[Booking]] = relationship(back_populates="provider")


class ServiceCategory(UUIDMixin, CreatedAtMixin, Base):
    """Top-level catalogue grouping such as car wash or cleaning."""

    __tablename__ = "service_categories"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class ServiceListing(BaseModelMixin, Base):
    """Priced service offered by a provider."""

    __tablename__ = "services"
    __table_args__ = (CheckConstraint("price >= 0", name="price_non_negative"),)

    provider_id: Mapped[UUID] = mapped_column(
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("service_categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    provider: Mapped[Provider] = relationship(back_populates="services")
    category: Mapped[ServiceCategory | None] = relationship()


class Review(UUIDMixin, CreatedAtMixin, Base):
    """Customer rating left after a completed booking."""

    __tablename__ = "reviews"
    __table_args__ = (CheckConstraint("rating BETWEEN 1 AND 5", name="rating_range"),)

    booking_id: Mapped[UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    customer_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    provider_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("providers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

"""Booking ORM models."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Numeric, String, Text, Time
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.core.database import Base, BaseModelMixin, enum_values
from marketplace.core.enums import BookingStatusEnum

if TYPE_CHECKING:
    from marketplace.modules.billing.models import Payment
    from marketplace.modules.disputes.models import Dispute
    from marketplace.modules.providers.models import Provider, ServiceListing


class Booking(BaseModelMixin, Base):
    """Scheduled, priced engagement between a customer and a provider."""

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="total_amount_non_negative"),
        CheckConstraint("commission_amount >= 0", name="commission_amount_non_negative"),
        CheckConstraint("provider_payout >= 0", name="provider_payout_non_negative"),
        CheckConstraint(
            "provider_payout + commission_amount = total_amount",
            name="payout_plus_commission_equals_total",
        ),
    )

    customer_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True, index=True)
    provider_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("providers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    service_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True,
    )

    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    provider_payout: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[BookingStatusEnum] = mapped_column(
        SAEnum(BookingStatusEnum, name="booking_status", native_enum=False, values_callable=enum_values),
        default=BookingStatusEnum.PENDING,
        nullable=False,
        index=True,
    )

    customer_address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    customer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    provider: Mapped["Provider | None"] = relationship(back_populates="bookings")
    service: Mapped["ServiceListing | None"] = relationship()
    payment: Mapped["Payment | None"] = relationship(back_populates="booking", uselist=False)
    dispute: Mapped["Dispute | None"] = relationship(back_populates="booking", uselist=False)

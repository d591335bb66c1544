"""Dispute ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.core.database import Base, BaseModelMixin, enum_values
from marketplace.core.enums import DisputeStatusEnum

if TYPE_CHECKING:
    from marketplace.modules.booking.models import Booking


class Dispute(BaseModelMixin, Base):
    """Flagged disagreement over one booking."""

    __tablename__ = "disputes"

    booking_id: Mapped[UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    raised_by_user_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[DisputeStatusEnum] = mapped_column(
        SAEnum(DisputeStatusEnum, name="dispute_status", native_enum=False, values_callable=enum_values),
        default=DisputeStatusEnum.OPEN,
        nullable=False,
        index=True,
    )
    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    booking: Mapped[Booking] = relationship(back_populates="dispute")

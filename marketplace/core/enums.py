"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """Application roles (``app_role``)."""

    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class PaymentStatusEnum(StrEnum):
    """Payment processing status."""

    PENDING = "pending"
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"
    FAILED = "failed"


class DisputeStatusEnum(StrEnum):
    """Dispute moderation status."""

    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    CLOSED = "closed"


class VerificationStatusEnum(StrEnum):
    """Provider verification status."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class SubscriptionTypeEnum(StrEnum):
    """Provider subscription tiers stored by the backend."""

    FEATURED = "featured"
    VERIFIED_BADGE = "verified_badge"
    ZERO_COMMISSION = "zero_commission"


class ChangeEventTypeEnum(StrEnum):
    """Realtime change event kinds."""

    INSERT = "insert"
    UPDATE = "update"

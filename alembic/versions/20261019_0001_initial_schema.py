"""Initial marketplace schema with booking change notifications

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


verification_status_enum = sa.Enum(
    "pending", "verified", "rejected", name="verification_status", native_enum=False
)
booking_status_enum = sa.Enum(
    "pending",
    "confirmed",
    "in_progress",
    "completed",
    "cancelled",
    "disputed",
    name="booking_status",
    native_enum=False,
)
payment_status_enum = sa.Enum(
    "pending", "held", "released", "refunded", "failed", name="payment_status", native_enum=False
)
dispute_status_enum = sa.Enum(
    "open", "investigating", "resolved", "closed", name="dispute_status", native_enum=False
)

BOOKING_CHANGES_CHANNEL = "booking_changes"

# pg_notify rejects payloads of 8000 bytes or more, so only identity and
# status columns are sent, never notes or addresses.
NOTIFY_RECORD_COLUMNS = ("id", "customer_id", "provider_id", "service_id", "status", "updated_at")


def _record_sql(row: str) -> str:
    pairs = ", ".join(f"'{column}', {row}.{column}" for column in NOTIFY_RECORD_COLUMNS)
    return f"json_build_object({pairs})"


NOTIFY_FUNCTION_SQL = f"""
CREATE OR REPLACE FUNCTION notify_booking_change() RETURNS trigger AS $$
BEGIN
    PERFORM pg_notify(
        '{BOOKING_CHANGES_CHANNEL}',
        json_build_object(
            'table', TG_TABLE_NAME,
            'type', lower(TG_OP),
            'record', {_record_sql('NEW')},
            'old_record', CASE WHEN TG_OP = 'UPDATE' THEN {_record_sql('OLD')} ELSE NULL END
        )::text
    );
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""

NOTIFY_TRIGGER_SQL = """
CREATE TRIGGER bookings_notify_change
AFTER INSERT OR UPDATE ON bookings
FOR EACH ROW EXECUTE FUNCTION notify_booking_change();
"""


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "providers",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("business_name", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=128), nullable=False),
        sa.Column("suburb", sa.String(length=128), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("service_radius_km", sa.Integer(), nullable=True),
        sa.Column("verification_status", verification_status_enum, nullable=False),
        sa.Column("is_featured", sa.Boolean(), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 4), nullable=True),
        sa.Column("total_bookings", sa.Integer(), nullable=False),
        sa.Column("total_reviews", sa.Integer(), nullable=False),
        sa.Column("average_rating", sa.Numeric(3, 2), nullable=False),
        sa.CheckConstraint(
            "commission_rate IS NULL OR (commission_rate >= 0 AND commission_rate < 1)",
            name="ck_providers_commission_rate_fraction",
        ),
        sa.UniqueConstraint("user_id", name="uq_providers_user_id"),
    )
    op.create_index("ix_providers_verification_status", "providers", ["verification_status"], unique=False)

    op.create_table(
        "service_categories",
        _id_col(),
        _created_col(),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("slug", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(length=64), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("slug", name="uq_service_categories_slug"),
    )

    op.create_table(
        "services",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("provider_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("category_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.CheckConstraint("price >= 0", name="ck_services_price_non_negative"),
        sa.ForeignKeyConstraint(
            ["provider_id"], ["providers.id"], name="fk_services_provider_id_providers", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["category_id"],
            ["service_categories.id"],
            name="fk_services_category_id_service_categories",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_services_provider_id", "services", ["provider_id"], unique=False)

    op.create_table(
        "bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("provider_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("commission_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("provider_payout", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("customer_address", sa.String(length=512), nullable=True),
        sa.Column("customer_notes", sa.Text(), nullable=True),
        sa.Column("provider_notes", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        sa.CheckConstraint("total_amount >= 0", name="ck_bookings_total_amount_non_negative"),
        sa.CheckConstraint("commission_amount >= 0", name="ck_bookings_commission_amount_non_negative"),
        sa.CheckConstraint("provider_payout >= 0", name="ck_bookings_provider_payout_non_negative"),
        sa.CheckConstraint(
            "provider_payout + commission_amount = total_amount",
            name="ck_bookings_payout_plus_commission_equals_total",
        ),
        sa.ForeignKeyConstraint(
            ["provider_id"], ["providers.id"], name="fk_bookings_provider_id_providers", ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["service_id"], ["services.id"], name="fk_bookings_service_id_services", ondelete="SET NULL"
        ),
    )
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"], unique=False)
    op.create_index("ix_bookings_provider_id", "bookings", ["provider_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)

    op.create_table(
        "payments",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("commission_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("payout_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", payment_status_enum, nullable=False),
        sa.Column("payment_method", sa.String(length=64), nullable=True),
        sa.Column("payment_reference", sa.String(length=128), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["booking_id"], ["bookings.id"], name="fk_payments_booking_id_bookings", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("booking_id", name="uq_payments_booking_id"),
    )
    op.create_index("ix_payments_status", "payments", ["status"], unique=False)

    op.create_table(
        "disputes",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("raised_by_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", dispute_status_enum, nullable=False),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["booking_id"], ["bookings.id"], name="fk_disputes_booking_id_bookings", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("booking_id", name="uq_disputes_booking_id"),
    )
    op.create_index("ix_disputes_status", "disputes", ["status"], unique=False)

    op.create_table(
        "reviews",
        _id_col(),
        _created_col(),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("provider_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("is_visible", sa.Boolean(), nullable=False),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        sa.ForeignKeyConstraint(
            ["booking_id"], ["bookings.id"], name="fk_reviews_booking_id_bookings", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["provider_id"], ["providers.id"], name="fk_reviews_provider_id_providers", ondelete="SET NULL"
        ),
        sa.UniqueConstraint("booking_id", name="uq_reviews_booking_id"),
    )
    op.create_index("ix_reviews_provider_id", "reviews", ["provider_id"], unique=False)

    op.execute(NOTIFY_FUNCTION_SQL)
    op.execute(NOTIFY_TRIGGER_SQL)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS bookings_notify_change ON bookings")
    op.execute("DROP FUNCTION IF EXISTS notify_booking_change()")

    op.drop_index("ix_reviews_provider_id", table_name="reviews")
    op.drop_table("reviews")

    op.drop_index("ix_disputes_status", table_name="disputes")
    op.drop_table("disputes")

    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_provider_id", table_name="bookings")
    op.drop_index("ix_bookings_customer_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_services_provider_id", table_name="services")
    op.drop_table("services")

    op.drop_table("service_categories")

    op.drop_index("ix_providers_verification_status", table_name="providers")
    op.drop_table("providers")

# backend/alembic/versions/001_booking_core.py
"""Booking core - studio catalog, bookings, payments, subscriptions, tracking

Revision ID: 001_booking_core
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the full booking core schema. Capacity is guarded twice: the
application only changes booked_count through conditional UPDATEs, and
ck_class_sessions_not_overbooked rejects any write that would overbook.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_booking_core"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json_type() -> sa.types.TypeEngine:
    if op.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import JSONB

        return JSONB(astext_type=sa.Text())
    return sa.JSON()


def upgrade() -> None:
    """Create booking core tables."""
    print("Creating booking core tables...")

    # ======== STUDIO CATALOG ========
    op.create_table(
        "studios",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("subdomain", sa.String(100), nullable=False),
        sa.Column("payments_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "merchant_sub_account_id",
            sa.String(255),
            nullable=True,
            comment="Stripe connected account id",
        ),
        sa.Column("charges_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_studios_subdomain", "studios", ["subdomain"], unique=True)

    for table in ("locations", "teachers"):
        op.create_table(
            table,
            sa.Column("id", sa.String(26), nullable=False),
            sa.Column("studio_id", sa.String(26), nullable=False),
            sa.Column("name", sa.String(200), nullable=False),
            sa.ForeignKeyConstraint(["studio_id"], ["studios.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_studio_id", table, ["studio_id"])

    op.create_table(
        "class_types",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("studio_id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.ForeignKeyConstraint(["studio_id"], ["studios.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_class_types_duration"),
    )
    op.create_index("ix_class_types_studio_id", "class_types", ["studio_id"])

    op.create_table(
        "class_sessions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("studio_id", sa.String(26), nullable=False),
        sa.Column("location_id", sa.String(26), nullable=False),
        sa.Column("class_type_id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("booked_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["studio_id"], ["studios.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["class_type_id"], ["class_types.id"]),
        sa.ForeignKeyConstraint(["teacher_id"], ["teachers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("capacity >= 0", name="ck_class_sessions_capacity"),
        sa.CheckConstraint("booked_count >= 0", name="ck_class_sessions_booked_non_negative"),
        sa.CheckConstraint("booked_count <= capacity", name="ck_class_sessions_not_overbooked"),
    )
    op.create_index("ix_class_sessions_studio_start", "class_sessions", ["studio_id", "start_time"])

    # ======== PAYMENTS ========
    op.create_table(
        "payments",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("studio_id", sa.String(26), nullable=False),
        sa.Column("merchant_sub_account_id", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("status", sa.String(20), nullable=False, server_default="CREATED"),
        sa.Column(
            "external_reference", sa.String(255), nullable=True, comment="Stripe PaymentIntent id"
        ),
        sa.Column("client_authorization_secret", sa.String(255), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("purpose", sa.String(30), nullable=False, server_default="booking"),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("class_session_id", sa.String(26), nullable=True),
        sa.Column("booking_type", sa.String(20), nullable=True),
        sa.Column("pack_size", sa.Integer(), nullable=True),
        sa.Column("subscription_interval", sa.String(20), nullable=True),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tracking_code", sa.String(128), nullable=True),
        sa.Column("subscription_id", sa.String(26), nullable=True),
        sa.Column("payment_method_ref", sa.String(255), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["studio_id"], ["studios.id"]),
        sa.ForeignKeyConstraint(["class_session_id"], ["class_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_reference"),
        sa.CheckConstraint(
            "status IN ('CREATED', 'AUTHORIZED', 'SUCCEEDED', 'FAILED', 'VOIDED')",
            name="ck_payments_status",
        ),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_studio_id", "payments", ["studio_id"])
    op.create_index("ix_payments_client_id", "payments", ["client_id"])
    op.create_index("ix_payments_status_created", "payments", ["status", "created_at"])

    op.create_table(
        "merchant_customers",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("merchant_sub_account_id", sa.String(255), nullable=False),
        sa.Column("stripe_customer_id", sa.String(255), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "client_id", "merchant_sub_account_id", name="uq_merchant_customers_client_account"
        ),
    )

    # ======== SUBSCRIPTIONS ========
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("studio_id", sa.String(26), nullable=False),
        sa.Column("plan_id", sa.String(26), nullable=False, comment="Class type"),
        sa.Column("booking_type", sa.String(20), nullable=False),
        sa.Column("interval", sa.String(20), nullable=False, server_default="monthly"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pack_size", sa.Integer(), nullable=True),
        sa.Column("credits_remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_method_ref", sa.String(255), nullable=True),
        sa.Column("merchant_customer_ref", sa.String(255), nullable=True),
        sa.Column("last_renewal_payment_id", sa.String(26), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["studio_id"], ["studios.id"]),
        sa.ForeignKeyConstraint(["plan_id"], ["class_types.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('active', 'cancelled', 'expired')", name="ck_subscriptions_status"
        ),
        sa.CheckConstraint("interval IN ('monthly', 'yearly')", name="ck_subscriptions_interval"),
        sa.CheckConstraint("credits_remaining >= 0", name="ck_subscriptions_credits"),
    )
    op.create_index("ix_subscriptions_client_studio", "subscriptions", ["client_id", "studio_id"])
    op.create_index(
        "ix_subscriptions_status_period", "subscriptions", ["status", "current_period_end"]
    )

    # ======== BOOKINGS ========
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("studio_id", sa.String(26), nullable=False),
        sa.Column("class_session_id", sa.String(26), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("booking_type", sa.String(20), nullable=False, server_default="SINGLE"),
        sa.Column("pack_size", sa.Integer(), nullable=True),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("payment_id", sa.String(26), nullable=True),
        sa.Column("subscription_id", sa.String(26), nullable=True),
        sa.Column("tracking_code", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["studio_id"], ["studios.id"]),
        sa.ForeignKeyConstraint(["class_session_id"], ["class_sessions.id"]),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"]),
        sa.PrimaryKeyConstraint("id"),
        # One payment backs at most one booking
        sa.UniqueConstraint("payment_id"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'CANCELLED', 'COMPLETED')",
            name="ck_bookings_status",
        ),
        sa.CheckConstraint(
            "booking_type IN ('SINGLE', 'RECURRING', 'PACK')", name="ck_bookings_type"
        ),
        sa.CheckConstraint("amount >= 0", name="ck_bookings_amount_non_negative"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_client_id", "bookings", ["client_id"])
    op.create_index("ix_bookings_class_session_id", "bookings", ["class_session_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_client_session", "bookings", ["client_id", "class_session_id"])

    # ======== TRACKING ========
    op.create_table(
        "tracking_attributions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("studio_id", sa.String(26), nullable=False),
        sa.Column("code", sa.String(128), nullable=False),
        sa.Column("clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conversions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("revenue", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("last_click_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_conversion_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(["studio_id"], ["studios.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("studio_id", "code", name="uq_tracking_attributions_studio_code"),
        sa.CheckConstraint("revenue >= 0", name="ck_tracking_attributions_revenue"),
    )
    op.create_table(
        "tracking_clicks",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("studio_id", sa.String(26), nullable=False),
        sa.Column("code", sa.String(128), nullable=False),
        sa.Column("browsing_session_id", sa.String(128), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "studio_id", "code", "browsing_session_id", name="uq_tracking_clicks_session"
        ),
    )
    op.create_table(
        "tracking_conversions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("studio_id", sa.String(26), nullable=False),
        sa.Column("code", sa.String(128), nullable=False),
        sa.Column("booking_id", sa.String(26), nullable=False),
        sa.Column("revenue", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id"),
    )
    op.create_index("ix_tracking_conversions_code", "tracking_conversions", ["code"])

    # ======== WEBHOOK LEDGER ========
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column(
            "account",
            sa.String(255),
            nullable=True,
            comment="Connected account that emitted the event",
        ),
        sa.Column("payload", _json_type(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("processing_duration_ms", sa.Integer(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("related_entity_type", sa.String(50), nullable=True),
        sa.Column("related_entity_id", sa.String(26), nullable=True),
        sa.Column(
            "received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source", "event_id", name="uq_webhook_events_source_event_id"),
    )
    op.create_index("ix_webhook_events_event_type", "webhook_events", ["event_type"])
    op.create_index("ix_webhook_events_status", "webhook_events", ["status"])

    print("Booking core tables created")


def downgrade() -> None:
    """Drop booking core tables."""
    print("Dropping booking core tables...")

    op.drop_index("ix_webhook_events_status", table_name="webhook_events")
    op.drop_index("ix_webhook_events_event_type", table_name="webhook_events")
    op.drop_table("webhook_events")

    op.drop_index("ix_tracking_conversions_code", table_name="tracking_conversions")
    op.drop_table("tracking_conversions")
    op.drop_table("tracking_clicks")
    op.drop_table("tracking_attributions")

    for index in (
        "ix_bookings_client_session",
        "ix_bookings_status",
        "ix_bookings_class_session_id",
        "ix_bookings_client_id",
        "ix_bookings_id",
    ):
        op.drop_index(index, table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_subscriptions_status_period", table_name="subscriptions")
    op.drop_index("ix_subscriptions_client_studio", table_name="subscriptions")
    op.drop_table("subscriptions")

    op.drop_table("merchant_customers")

    op.drop_index("ix_payments_status_created", table_name="payments")
    op.drop_index("ix_payments_client_id", table_name="payments")
    op.drop_index("ix_payments_studio_id", table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_class_sessions_studio_start", table_name="class_sessions")
    op.drop_table("class_sessions")
    op.drop_index("ix_class_types_studio_id", table_name="class_types")
    op.drop_table("class_types")
    for table in ("teachers", "locations"):
        op.drop_index(f"ix_{table}_studio_id", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_studios_subdomain", table_name="studios")
    op.drop_table("studios")

    print("Booking core tables dropped")

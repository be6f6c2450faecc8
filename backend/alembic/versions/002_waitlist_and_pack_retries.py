# backend/alembic/versions/002_waitlist_and_pack_retries.py
"""Waitlist entries and pack renewal attempt counter

Revision ID: 002_waitlist_and_pack_retries
Revises: 001_booking_core
Create Date: 2026-10-19 12:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002_waitlist_and_pack_retries"
down_revision: Union[str, None] = "001_booking_core"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add waitlist_entries and subscriptions.renewal_attempts."""
    print("Creating waitlist and pack retry schema...")

    op.add_column(
        "subscriptions",
        sa.Column(
            "renewal_attempts",
            sa.Integer(),
            nullable=False,
            server_default="0",
            comment="Failed auto-renew charges since the last renewal",
        ),
    )

    # ======== WAITLIST ========
    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("studio_id", sa.String(26), nullable=False),
        sa.Column("class_session_id", sa.String(26), nullable=False),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="WAITING"),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("booking_id", sa.String(26), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["studio_id"], ["studios.id"]),
        sa.ForeignKeyConstraint(["class_session_id"], ["class_sessions.id"]),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('WAITING', 'NOTIFIED', 'BOOKED', 'CANCELLED', 'EXPIRED')",
            name="ck_waitlist_entries_status",
        ),
        sa.CheckConstraint("position >= 1", name="ck_waitlist_entries_position"),
    )
    op.create_index(
        "ix_waitlist_entries_session_status",
        "waitlist_entries",
        ["class_session_id", "status", "position"],
    )
    op.create_index(
        "ix_waitlist_entries_client_studio", "waitlist_entries", ["client_id", "studio_id"]
    )

    print("Waitlist and pack retry schema created")


def downgrade() -> None:
    """Drop waitlist_entries and subscriptions.renewal_attempts."""
    print("Dropping waitlist and pack retry schema...")

    op.drop_index("ix_waitlist_entries_client_studio", table_name="waitlist_entries")
    op.drop_index("ix_waitlist_entries_session_status", table_name="waitlist_entries")
    op.drop_table("waitlist_entries")

    with op.batch_alter_table("subscriptions") as batch_op:
        batch_op.drop_column("renewal_attempts")

    print("Waitlist and pack retry schema dropped")

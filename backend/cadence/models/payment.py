"""
Payment models.

A Payment is a hold opened on a studio's own Stripe connected account.
It carries the booking attempt it was opened for, so a processor webhook
can reconcile the booking without the client coming back.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..core.enums import PaymentPurpose, PaymentStatus
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Payment(Base):
    """Hold against a tenant's merchant sub-account."""

    __tablename__ = "payments"

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('CREATED', 'AUTHORIZED', 'SUCCEEDED', 'FAILED', 'VOIDED')",
            name="ck_payments_status",
        ),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.Index("ix_payments_status_created", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    studio_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("studios.id"), nullable=False, index=True
    )
    merchant_sub_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.CREATED.value
    )
    external_reference: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True, comment="Stripe PaymentIntent id"
    )
    client_authorization_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Booking attempt context
    purpose: Mapped[str] = mapped_column(
        String(30), nullable=False, default=PaymentPurpose.BOOKING.value
    )
    client_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    class_session_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("class_sessions.id"), nullable=True
    )
    booking_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    pack_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    subscription_interval: Mapped[str | None] = mapped_column(String(20), nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tracking_code: Mapped[str | None] = mapped_column(String(128), nullable=True)
    subscription_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    payment_method_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=_now_utc
    )

    @property
    def is_settled(self) -> bool:
        """True once the processor authorized or captured the funds."""
        return self.status in (PaymentStatus.AUTHORIZED.value, PaymentStatus.SUCCEEDED.value)

    @property
    def is_terminal(self) -> bool:
        return self.status in (PaymentStatus.FAILED.value, PaymentStatus.VOIDED.value)

    def __repr__(self) -> str:
        return (
            f"<Payment {self.id}: studio={self.studio_id} amount={self.amount} "
            f"{self.currency} status={self.status} ref={self.external_reference}>"
        )


class MerchantCustomer(Base):
    """Stripe customer created on a studio's connected account for one client."""

    __tablename__ = "merchant_customers"

    __table_args__ = (
        sa.UniqueConstraint(
            "client_id", "merchant_sub_account_id", name="uq_merchant_customers_client_account"
        ),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    merchant_sub_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    stripe_customer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )

"""
Payment Repository

Data access for payment holds and per-account Stripe customers.

Status changes that can race (client confirmation vs. processor webhook vs.
stale-hold sweep) go through ``transition_status``, a conditional UPDATE
that only applies when the payment is still in one of the expected states.
"""

from datetime import datetime, timezone
import logging
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import PaymentPurpose, PaymentStatus
from ..core.exceptions import RepositoryException
from ..models.booking import Booking
from ..models.payment import MerchantCustomer, Payment
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[Payment]):
    """
    Repository for payment data access.

    Uses Payment as the primary model; merchant customers are handled
    alongside since they only exist to support payments.
    """

    def __init__(self, db: Session):
        super().__init__(db, Payment)

    # ========== Payment holds ==========

    def get_by_external_reference(self, external_reference: str) -> Optional[Payment]:
        """Find the payment for a Stripe PaymentIntent id."""
        try:
            return (
                self.db.query(Payment)
                .filter(Payment.external_reference == external_reference)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting payment by reference {external_reference}: {str(e)}")
            raise RepositoryException(f"Failed to get payment: {str(e)}")

    def transition_status(
        self,
        payment_id: str,
        *,
        from_statuses: Iterable[PaymentStatus],
        to_status: PaymentStatus,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """
        Move a payment to ``to_status`` only if it is currently in ``from_statuses``.

        Returns:
            True if this call performed the transition.
        """
        values = {"status": to_status.value, "updated_at": datetime.now(timezone.utc)}
        if failure_reason is not None:
            values["failure_reason"] = failure_reason
        try:
            result = self.db.execute(
                update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.status.in_([s.value for s in from_statuses]),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount == 1
            if changed:
                # Keep any loaded instance in step with the row
                self.db.get(Payment, payment_id, populate_existing=True)
            return changed
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating payment {payment_id} status: {str(e)}")
            raise RepositoryException(f"Failed to update payment status: {str(e)}") from e

    def list_stale_holds(self, created_before: datetime, limit: int = 100) -> List[Payment]:
        """
        Booking holds that never turned into a booking and are older than the cutoff.

        Renewal payments are excluded; they are captured inline by the lifecycle manager.
        """
        try:
            return (
                self.db.query(Payment)
                .outerjoin(Booking, Booking.payment_id == Payment.id)
                .filter(
                    Payment.purpose == PaymentPurpose.BOOKING.value,
                    Payment.status.in_(
                        [PaymentStatus.CREATED.value, PaymentStatus.AUTHORIZED.value]
                    ),
                    Payment.created_at < created_before,
                    Booking.id.is_(None),
                )
                .order_by(Payment.created_at.asc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing stale holds: {str(e)}")
            raise RepositoryException(f"Failed to list stale holds: {str(e)}")

    # ========== Merchant customers ==========

    def get_merchant_customer(
        self, client_id: str, merchant_sub_account_id: str
    ) -> Optional[MerchantCustomer]:
        try:
            return (
                self.db.query(MerchantCustomer)
                .filter(
                    MerchantCustomer.client_id == client_id,
                    MerchantCustomer.merchant_sub_account_id == merchant_sub_account_id,
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to get merchant customer: {str(e)}")

    def create_merchant_customer(
        self, client_id: str, merchant_sub_account_id: str, stripe_customer_id: str
    ) -> MerchantCustomer:
        try:
            customer = MerchantCustomer(
                client_id=client_id,
                merchant_sub_account_id=merchant_sub_account_id,
                stripe_customer_id=stripe_customer_id,
            )
            self.db.add(customer)
            self.db.flush()
            return customer
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to create merchant customer: {str(e)}")
            raise RepositoryException(f"Failed to create merchant customer: {str(e)}") from e

"""Subscription Repository: lifecycle queries and conditional pack-credit updates."""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import BookingType, SubscriptionStatus
from ..core.exceptions import RepositoryException
from ..models.subscription import Subscription
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository[Subscription]):
    def __init__(self, db: Session):
        super().__init__(db, Subscription)

    def get_fresh(self, subscription_id: str) -> Optional[Subscription]:
        try:
            return self.db.get(Subscription, subscription_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load subscription: {str(e)}")

    def list_for_client(self, client_id: str, studio_id: Optional[str] = None) -> List[Subscription]:
        try:
            query = self.db.query(Subscription).filter(Subscription.client_id == client_id)
            if studio_id:
                query = query.filter(Subscription.studio_id == studio_id)
            return query.order_by(Subscription.created_at.desc()).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing subscriptions for {client_id}: {str(e)}")
            raise RepositoryException(f"Failed to list subscriptions: {str(e)}")

    def find_active_for_plan(
        self, client_id: str, studio_id: str, plan_id: str, booking_type: BookingType
    ) -> Optional[Subscription]:
        try:
            return (
                self.db.query(Subscription)
                .filter(
                    Subscription.client_id == client_id,
                    Subscription.studio_id == studio_id,
                    Subscription.plan_id == plan_id,
                    Subscription.booking_type == booking_type.value,
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to find subscription: {str(e)}")

    def try_consume_credit(self, subscription_id: str) -> bool:
        """Take one pack credit if any remain; False when the pack is exhausted."""
        try:
            result = self.db.execute(
                update(Subscription)
                .where(
                    Subscription.id == subscription_id,
                    Subscription.credits_remaining > 0,
                )
                .values(credits_remaining=Subscription.credits_remaining - 1)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            self.logger.error(f"Error consuming credit on {subscription_id}: {str(e)}")
            raise RepositoryException(f"Failed to consume pack credit: {str(e)}") from e

    def replenish_credits(
        self, subscription_id: str, credits: int, renewal_payment_id: str, period_end: datetime
    ) -> bool:
        """
        Add ``credits`` once per renewal payment.

        The payment id is recorded in the same UPDATE, so replaying the same
        renewal leaves the balance untouched.
        """
        try:
            result = self.db.execute(
                update(Subscription)
                .where(
                    Subscription.id == subscription_id,
                    or_(
                        Subscription.last_renewal_payment_id.is_(None),
                        Subscription.last_renewal_payment_id != renewal_payment_id,
                    ),
                )
                .values(
                    credits_remaining=Subscription.credits_remaining + credits,
                    last_renewal_payment_id=renewal_payment_id,
                    current_period_end=period_end,
                    renewal_attempts=0,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            self.logger.error(f"Error replenishing credits on {subscription_id}: {str(e)}")
            raise RepositoryException(f"Failed to replenish pack credits: {str(e)}") from e

    def add_credits(self, subscription_id: str, credits: int) -> bool:
        """Top a pack up in place, e.g. when the same pack is bought again."""
        try:
            result = self.db.execute(
                update(Subscription)
                .where(Subscription.id == subscription_id)
                .values(credits_remaining=Subscription.credits_remaining + credits)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            self.logger.error(f"Error adding credits on {subscription_id}: {str(e)}")
            raise RepositoryException(f"Failed to add pack credits: {str(e)}") from e

    def list_lapsed_cancelled(self, now: datetime, limit: int = 500) -> List[Subscription]:
        """
        Cancel-requested subscriptions with nothing left to use: recurring ones
        past their paid period, packs with no credits.
        """
        try:
            return (
                self.db.query(Subscription)
                .filter(
                    Subscription.status == SubscriptionStatus.CANCELLED.value,
                    or_(
                        and_(
                            Subscription.booking_type == BookingType.RECURRING.value,
                            Subscription.current_period_end <= now,
                        ),
                        and_(
                            Subscription.booking_type == BookingType.PACK.value,
                            Subscription.credits_remaining <= 0,
                        ),
                    ),
                )
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list lapsed subscriptions: {str(e)}")

    def list_exhausted_auto_renew(self, max_attempts: int, limit: int = 200) -> List[Subscription]:
        """Active auto-renew packs at zero credits whose renewal has not yet gone through."""
        try:
            return (
                self.db.query(Subscription)
                .filter(
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                    Subscription.booking_type == BookingType.PACK.value,
                    Subscription.auto_renew.is_(True),
                    Subscription.credits_remaining <= 0,
                    Subscription.renewal_attempts < max_attempts,
                )
                .order_by(Subscription.created_at.asc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list exhausted packs: {str(e)}")


    def list_due_recurring(self, now: datetime, limit: int = 200) -> List[Subscription]:
        """Active recurring subscriptions whose period has ended and need the next charge."""
        try:
            return (
                self.db.query(Subscription)
                .filter(
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                    Subscription.booking_type == BookingType.RECURRING.value,
                    Subscription.current_period_end <= now,
                )
                .order_by(Subscription.current_period_end.asc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list due subscriptions: {str(e)}")

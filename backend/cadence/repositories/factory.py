# backend/cadence/repositories/factory.py
"""
Repository Factory

Centralizes repository construction so services never instantiate
repositories directly, which keeps them easy to swap in tests.
"""

from sqlalchemy.orm import Session

from .booking_repository import BookingRepository
from .class_session_repository import ClassSessionRepository
from .payment_repository import PaymentRepository
from .studio_repository import StudioRepository
from .subscription_repository import SubscriptionRepository
from .tracking_repository import TrackingRepository
from .waitlist_repository import WaitlistRepository
from .webhook_event_repository import WebhookEventRepository


class RepositoryFactory:
    """Factory for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> BookingRepository:
        return BookingRepository(db)

    @staticmethod
    def create_class_session_repository(db: Session) -> ClassSessionRepository:
        return ClassSessionRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> PaymentRepository:
        return PaymentRepository(db)

    @staticmethod
    def create_studio_repository(db: Session) -> StudioRepository:
        return StudioRepository(db)

    @staticmethod
    def create_subscription_repository(db: Session) -> SubscriptionRepository:
        return SubscriptionRepository(db)

    @staticmethod
    def create_tracking_repository(db: Session) -> TrackingRepository:
        return TrackingRepository(db)

    @staticmethod
    def create_webhook_event_repository(db: Session) -> WebhookEventRepository:
        return WebhookEventRepository(db)

    @staticmethod
    def create_waitlist_repository(db: Session) -> WaitlistRepository:
        return WaitlistRepository(db)

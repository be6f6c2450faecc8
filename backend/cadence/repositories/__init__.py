# backend/cadence/repositories/__init__.py
"""
Repository Pattern Implementation for the booking core

Key Components:
- BaseRepository: generic CRUD that flushes but never commits
- RepositoryFactory: factory for creating repository instances
- ClassSessionRepository: slot queries and conditional capacity updates
- BookingRepository, PaymentRepository, SubscriptionRepository
- TrackingRepository: attribution counters and dedupe rows
- WebhookEventRepository: processor event ledger

Usage:
    from cadence.repositories import RepositoryFactory

    repository = RepositoryFactory.create_class_session_repository(db)
    reserved = repository.try_reserve_spot(class_session_id)
"""

from .base_repository import BaseRepository, IRepository
from .booking_repository import BookingRepository
from .class_session_repository import ClassSessionRepository
from .factory import RepositoryFactory
from .payment_repository import PaymentRepository
from .studio_repository import StudioRepository
from .subscription_repository import SubscriptionRepository
from .tracking_repository import TrackingRepository
from .webhook_event_repository import WebhookEventRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "ClassSessionRepository",
    "IRepository",
    "PaymentRepository",
    "RepositoryFactory",
    "StudioRepository",
    "SubscriptionRepository",
    "TrackingRepository",
    "WebhookEventRepository",
]

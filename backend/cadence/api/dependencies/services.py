# backend/cadence/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each factory builds a service bound to the request's database session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.booking_reconciler import BookingReconciler
from ...services.payment_authorization_service import PaymentAuthorizationService
from ...services.slot_availability_service import SlotAvailabilityService
from ...services.stripe_service import StripeService
from ...services.stripe_webhook_service import StripeWebhookService
from ...services.subscription_lifecycle_service import SubscriptionLifecycleService
from ...services.tracking_attribution_service import TrackingAttributionService
from ...services.waitlist_service import WaitlistService
from .database import get_db


def get_slot_service(db: Session = Depends(get_db)) -> SlotAvailabilityService:
    return SlotAvailabilityService(db)


def get_stripe_service(db: Session = Depends(get_db)) -> StripeService:
    return StripeService(db)


def get_payment_service(
    db: Session = Depends(get_db), stripe_service: StripeService = Depends(get_stripe_service)
) -> PaymentAuthorizationService:
    return PaymentAuthorizationService(db, stripe_service=stripe_service)


def get_booking_reconciler(
    db: Session = Depends(get_db),
    payment_service: PaymentAuthorizationService = Depends(get_payment_service),
) -> BookingReconciler:
    return BookingReconciler(db, payment_service=payment_service)


def get_subscription_service(
    db: Session = Depends(get_db),
    payment_service: PaymentAuthorizationService = Depends(get_payment_service),
) -> SubscriptionLifecycleService:
    return SubscriptionLifecycleService(db, payment_service=payment_service)


def get_tracking_service(db: Session = Depends(get_db)) -> TrackingAttributionService:
    return TrackingAttributionService(db)


def get_webhook_service(
    db: Session = Depends(get_db),
    payment_service: PaymentAuthorizationService = Depends(get_payment_service),
) -> StripeWebhookService:
    return StripeWebhookService(db, payment_service=payment_service)


def get_waitlist_service(db: Session = Depends(get_db)) -> WaitlistService:
    return WaitlistService(db)

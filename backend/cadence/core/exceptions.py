# backend/cadence/core/exceptions.py
"""
Domain-specific exceptions for the booking core.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def _detail(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        """Default conversion to HTTPException (override in subclasses)."""
        return HTTPException(status_code=self.status_code, detail=self._detail())


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """Raised when the caller does not own the resource."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class InvalidPriceError(ValidationException):
    """Raised when a class price cannot be charged (zero or negative)."""

    def __init__(self, price: Any):
        super().__init__(
            message="Price must be greater than zero",
            code="INVALID_PRICE",
            details={"price": str(price)},
        )


class SlotUnavailableError(ConflictException):
    """Raised when the session filled up before this booking could reserve a spot."""

    def __init__(
        self,
        class_session_id: str,
        *,
        payment_voided: bool = False,
    ):
        super().__init__(
            message="This class is now full. Please choose another slot.",
            code="SLOT_UNAVAILABLE",
            details={
                "class_session_id": class_session_id,
                "payment_voided": payment_voided,
                "retryable": True,
            },
        )


# Capacity conflicts and unavailable slots are the same failure
CapacityConflictError = SlotUnavailableError


class DuplicateBookingError(ConflictException):
    """Raised when the client already holds an active booking for the session."""

    def __init__(self, class_session_id: str, booking_id: str):
        super().__init__(
            message="You already have a booking for this class",
            code="DUPLICATE_BOOKING",
            details={"class_session_id": class_session_id, "booking_id": booking_id},
        )


class PaymentNotSettledError(ConflictException):
    """Raised when confirmation is attempted before the processor authorized the payment."""

    def __init__(self, payment_id: str, payment_status: str):
        super().__init__(
            message="Payment has not been authorized",
            code="PAYMENT_NOT_SETTLED",
            details={"payment_id": payment_id, "status": payment_status},
        )


class ConfigurationError(BusinessRuleException):
    """Raised when a studio cannot take payments because its merchant account is missing."""

    def __init__(self, message: str, *, studio_id: Optional[str] = None):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details={"studio_id": studio_id, "retryable": False},
        )


class PaymentInitializationError(ServiceException):
    """Raised when the payment processor could not open a hold. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code="PAYMENT_INITIALIZATION_FAILED",
            details={**(details or {}), "retryable": True},
        )

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail=self._detail(),
            headers={"Retry-After": "2"},
        )


class PaymentCaptureError(ServiceException):
    """Raised when an authorized hold could not be captured."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, payment_id: str, reason: str):
        super().__init__(
            message="Payment could not be completed",
            code="PAYMENT_CAPTURE_FAILED",
            details={"payment_id": payment_id, "reason": reason},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """

# backend/coachledger/core/exceptions.py
"""
Domain-specific exceptions for the booking and credit-ledger engine.

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

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class-level status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


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


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific ledger exceptions


class InsufficientBalanceException(BusinessRuleException):
    """Raised when a debit or adjustment would drive a balance below zero."""

    def __init__(
        self,
        *,
        source: str,
        source_id: str,
        requested: int,
        available: Optional[int] = None,
    ):
        if available is None:
            message = f"Not enough sessions remaining on {source} {source_id}"
        else:
            message = (
                f"Not enough sessions remaining on {source} {source_id}: "
                f"requested {requested}, available {available}"
            )
        super().__init__(
            message=message,
            code="INSUFFICIENT_BALANCE",
            details={
                "source": source,
                "source_id": source_id,
                "requested": requested,
                "available": available,
            },
        )


class AlreadyUsedException(ConflictException):
    """Raised when the monthly check-in allowance has already been consumed."""

    def __init__(self, client_id: str, coach_id: str, month: str):
        super().__init__(
            message="Monthly check-in already used",
            code="CHECKIN_ALREADY_USED",
            details={"client_id": client_id, "coach_id": coach_id, "month": month},
        )


class InvalidSlotException(ValidationException):
    """Raised when a slot is malformed or lies in the past."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_SLOT", details=details or {})


class InvariantViolationException(ServiceException):
    """Raised when a ledger invariant would break. Indicates a bug if ever seen."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVARIANT_VIOLATION", details=details or {})


class ConcurrentModificationException(ConflictException):
    """Raised when a balance changed between read and compare-and-set write."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} {entity_id} was modified concurrently, please retry",
            code="CONCURRENT_MODIFICATION",
            details={"entity": entity, "entity_id": entity_id},
        )


class PackageExpiredException(BusinessRuleException):
    """Raised when an expired package is selected for a new debit."""

    def __init__(self, package_id: str, expires_at: str):
        super().__init__(
            message=f"Session package {package_id} expired on {expires_at}",
            code="PACKAGE_EXPIRED",
            details={"package_id": package_id, "expires_at": expires_at},
        )


class SubscriptionNotMeteredException(BusinessRuleException):
    """Raised when a balance operation targets an online-only subscription."""

    def __init__(self, subscription_id: str):
        super().__init__(
            message="Online-only subscriptions carry no session balance",
            code="SUBSCRIPTION_NOT_METERED",
            details={"subscription_id": subscription_id},
        )


class InvalidBookingTransitionException(BusinessRuleException):
    """Raised when a status change is requested from a non-confirmed booking."""

    def __init__(self, booking_id: str, current_status: str, target_status: str):
        super().__init__(
            message=(
                f"Booking cannot move to {target_status} - current status: {current_status}"
            ),
            code="INVALID_BOOKING_TRANSITION",
            details={
                "booking_id": booking_id,
                "current_status": current_status,
                "target_status": target_status,
            },
        )


class InsufficientNoticeException(BusinessRuleException):
    """Raised when booking doesn't meet minimum advance notice."""

    def __init__(self, required_hours: int, provided_hours: float):
        super().__init__(
            message=f"Bookings require {required_hours} hours notice",
            code="INSUFFICIENT_NOTICE",
            details={
                "required_hours": required_hours,
                "provided_hours": provided_hours,
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """

# backend/coachledger/models/__init__.py
"""
SQLAlchemy models for the booking and credit-ledger engine.

Importing this package registers every table on ``Base.metadata``.
"""

from .availability import AvailabilityOverride, AvailabilityTemplate, AvailabilityType
from .booking import Booking, BookingStatus, BookingType
from .booking_stats import ClientBookingStats
from .checkin_usage import ClientCheckinUsage
from .coach_settings import CoachBookingSettings
from .session_package import PackageAdjustment, SessionPackage
from .subscription import ClientSubscription, SubscriptionType

__all__ = [
    "AvailabilityOverride",
    "AvailabilityTemplate",
    "AvailabilityType",
    "Booking",
    "BookingStatus",
    "BookingType",
    "ClientBookingStats",
    "ClientCheckinUsage",
    "ClientSubscription",
    "CoachBookingSettings",
    "PackageAdjustment",
    "SessionPackage",
    "SubscriptionType",
]

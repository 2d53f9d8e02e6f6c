# backend/coachledger/services/__init__.py
"""
Service layer for the booking and credit-ledger engine.

Services own transactions and business rules; repositories own queries.
"""

from .availability_service import AvailabilityService
from .base import UNSET, BaseService
from .booking_service import BookingService
from .booking_stats_service import BookingStatsService
from .booking_sweep_service import BookingSweepService
from .checkin_quota_service import CheckinQuotaService
from .package_ledger_service import PackageLedgerService
from .subscription_ledger_service import SubscriptionLedgerService

__all__ = [
    "UNSET",
    "AvailabilityService",
    "BaseService",
    "BookingService",
    "BookingStatsService",
    "BookingSweepService",
    "CheckinQuotaService",
    "PackageLedgerService",
    "SubscriptionLedgerService",
]

# backend/coachledger/repositories/__init__.py
"""
Repository layer for the booking and ledger engine.

Repositories encapsulate queries and guarded writes; they never commit.
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .booking_stats_repository import BookingStatsRepository
from .checkin_usage_repository import CheckinUsageRepository
from .coach_settings_repository import CoachSettingsRepository
from .factory import RepositoryFactory
from .package_repository import PackageRepository
from .subscription_repository import SubscriptionRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "BookingRepository",
    "BookingStatsRepository",
    "CheckinUsageRepository",
    "CoachSettingsRepository",
    "PackageRepository",
    "RepositoryFactory",
    "SubscriptionRepository",
]

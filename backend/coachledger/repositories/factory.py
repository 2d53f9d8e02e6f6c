# backend/coachledger/repositories/factory.py
"""
Repository Factory for the booking and ledger engine.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .booking_repository import BookingRepository
    from .booking_stats_repository import BookingStatsRepository
    from .checkin_usage_repository import CheckinUsageRepository
    from .coach_settings_repository import CoachSettingsRepository
    from .package_repository import PackageRepository
    from .subscription_repository import SubscriptionRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_base_repository(db: Session, model: Any) -> BaseRepository:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for working-window templates and overrides."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking operations."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_package_repository(db: Session) -> "PackageRepository":
        """Create repository for session package balances."""
        from .package_repository import PackageRepository

        return PackageRepository(db)

    @staticmethod
    def create_subscription_repository(db: Session) -> "SubscriptionRepository":
        """Create repository for subscription balances."""
        from .subscription_repository import SubscriptionRepository

        return SubscriptionRepository(db)

    @staticmethod
    def create_checkin_usage_repository(db: Session) -> "CheckinUsageRepository":
        from .checkin_usage_repository import CheckinUsageRepository

        return CheckinUsageRepository(db)

    @staticmethod
    def create_coach_settings_repository(db: Session) -> "CoachSettingsRepository":
        from .coach_settings_repository import CoachSettingsRepository

        return CoachSettingsRepository(db)

    @staticmethod
    def create_booking_stats_repository(db: Session) -> "BookingStatsRepository":
        from .booking_stats_repository import BookingStatsRepository

        return BookingStatsRepository(db)

"""Per-coach booking policy lookups."""

from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.coach_settings import CoachBookingSettings
from .base_repository import BaseRepository


class CoachSettingsRepository(BaseRepository[CoachBookingSettings]):
    def __init__(self, db: Session):
        super().__init__(db, CoachBookingSettings)

    def get_for_coach(self, coach_id: str) -> Optional[CoachBookingSettings]:
        return self.db.get(CoachBookingSettings, coach_id)

    def get_timezone_name(self, coach_id: str) -> str:
        """IANA timezone for the coach, or the configured default."""
        coach_settings = self.get_for_coach(coach_id)
        if coach_settings is not None and coach_settings.timezone:
            return coach_settings.timezone
        return settings.default_timezone

    def get_min_notice_hours(self, coach_id: str) -> int:
        coach_settings = self.get_for_coach(coach_id)
        if coach_settings is not None and coach_settings.min_notice_hours is not None:
            return coach_settings.min_notice_hours
        return settings.default_min_notice_hours
